"""
Key ring resolution.

This module provides:
- decode_key: hex / base64 / raw-text key decoding
- parse_key_entries: lenient parse of the key settings into tagged entries
- KeyRing: immutable snapshot of version -> key bytes plus the default version
- KeyRingProvider: abstract source of snapshots, injected into FieldCipher
- EnvKeyRingProvider: rebuilds the ring from the environment on every call
- StaticKeyRingProvider: fixed ring, mostly for tests and embedding

Settings consumed:
- ENCRYPTION_KEY: "v2:KEY2,v1:KEY1" or one bare key (bound to the default version)
- ENCRYPTION_KEY_V<n>: one key for version v<n>, wins over ENCRYPTION_KEY
- KMS_KEY_ID: default version for encryption
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .config import (
    DISCRETE_KEY_PATTERN,
    ENCRYPTION_KEY_ENV,
    FALLBACK_KEY_VERSION,
    environ_mapping,
    resolve_current_version,
)
from .crypto import AES_256_KEY_SIZE, SecureKey
from .errors import KeyLengthError, KeyNotFoundError

logger = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def decode_key(encoded: str) -> bytes:
    """
    Decode key material supplied as configuration text.

    Tries, in order:
    1. hex, when the input is exactly 64 hex characters
    2. base64, accepted only if re-encoding reproduces the input
    3. the raw UTF-8 bytes of the text

    The length is not checked here; KeyRing.get_key enforces 32 bytes.
    """
    normalized = encoded.strip()

    if _HEX_KEY.match(normalized):
        return bytes.fromhex(normalized)

    unpadded = normalized.rstrip("=")
    if unpadded:
        padded = unpadded + "=" * (-len(unpadded) % 4)
        try:
            decoded = base64.b64decode(padded, validate=True)
        except (binascii.Error, ValueError):
            decoded = None
        if decoded and base64.b64encode(decoded).decode("ascii").rstrip("=") == unpadded:
            return decoded

    return normalized.encode("utf-8")


@dataclass(frozen=True)
class ParsedEntry:
    """A key setting that decoded successfully."""

    version: str
    key: bytes
    source: str

    def __repr__(self) -> str:
        return f"ParsedEntry(version={self.version!r}, source={self.source!r}, key=[REDACTED])"


@dataclass(frozen=True)
class SkippedEntry:
    """A key setting that was ignored, with the reason."""

    source: str
    reason: str


KeyEntry = Union[ParsedEntry, SkippedEntry]
SkipHook = Callable[[SkippedEntry], None]


def _parse_consolidated(value: str, default_version: str) -> Iterator[KeyEntry]:
    parts = value.split(",")
    for index, part in enumerate(parts):
        source = f"{ENCRYPTION_KEY_ENV}[{index}]"
        part = part.strip()
        if not part:
            yield SkippedEntry(source, "empty entry")
            continue

        if ":" not in part:
            if len(parts) != 1:
                yield SkippedEntry(source, "bare key in a multi-key setting")
                continue
            yield ParsedEntry(default_version, decode_key(part), source)
            continue

        version, _, encoded = part.partition(":")
        version = version.strip()
        if not version:
            yield SkippedEntry(source, "missing version")
        elif not encoded.strip():
            yield SkippedEntry(source, "missing key")
        else:
            yield ParsedEntry(version, decode_key(encoded), source)


def _parse_discrete(env: Mapping[str, str]) -> Iterator[KeyEntry]:
    for name in sorted(env):
        match = DISCRETE_KEY_PATTERN.match(name)
        if not match:
            continue
        value = env[name] or ""
        if not value.strip():
            yield SkippedEntry(name, "missing key")
            continue
        yield ParsedEntry(match.group(1).lower(), decode_key(value), name)


def parse_key_entries(environ: Optional[Mapping[str, str]] = None) -> List[KeyEntry]:
    """
    Parse every key setting into tagged entries.

    Consolidated entries come first and discrete entries after, so applying
    the list in order lets discrete settings win.
    """
    env = environ_mapping(environ)
    entries: List[KeyEntry] = []
    consolidated = env.get(ENCRYPTION_KEY_ENV) or ""
    if consolidated.strip():
        entries.extend(_parse_consolidated(consolidated, resolve_current_version(env)))
    entries.extend(_parse_discrete(env))
    return entries


class KeyRing:
    """
    Immutable snapshot of the known key versions.

    Keys are stored as decoded bytes without a length check; get_key
    rejects anything that is not 32 bytes.
    """

    __slots__ = ("_keys", "_default_version")

    def __init__(
        self,
        keys: Mapping[str, bytes],
        default_version: str = FALLBACK_KEY_VERSION,
    ) -> None:
        self._keys = MappingProxyType(dict(keys))
        self._default_version = default_version

    @property
    def default_version(self) -> str:
        return self._default_version

    @property
    def keys(self) -> Mapping[str, bytes]:
        return self._keys

    def versions(self) -> List[str]:
        return list(self._keys)

    def get_key(self, version: Optional[str] = None) -> SecureKey:
        """
        Look up the key for a version (default version if omitted).

        Raises:
            KeyNotFoundError: If the version is not in the ring
            KeyLengthError: If the key is not exactly 32 bytes
        """
        version = version or self._default_version
        key = self._keys.get(version)
        if key is None:
            raise KeyNotFoundError(version)
        if len(key) != AES_256_KEY_SIZE:
            raise KeyLengthError(version, len(key))
        return SecureKey(key, version)

    def candidates(self, preferred: Optional[str] = None) -> List[Tuple[str, SecureKey]]:
        """
        Usable keys for decryption, the preferred version first.

        Keys of the wrong length are left out since they can never
        authenticate anything.
        """
        order = sorted(self._keys, key=lambda v: v != preferred)
        return [
            (version, SecureKey(self._keys[version], version))
            for version in order
            if len(self._keys[version]) == AES_256_KEY_SIZE
        ]

    def __contains__(self, version: object) -> bool:
        return version in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeyRing(versions={self.versions()!r}, default={self._default_version!r})"


class KeyRingProvider(ABC):
    """Source of key ring snapshots."""

    @abstractmethod
    def snapshot(self) -> KeyRing:
        """Return the current key ring."""
        ...


class EnvKeyRingProvider(KeyRingProvider):
    """
    Builds the key ring from the environment on every snapshot.

    Args:
        environ: Mapping to read instead of os.environ
        on_skip: Called with each SkippedEntry (diagnostics hook)
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        on_skip: Optional[SkipHook] = None,
    ) -> None:
        self._environ = environ
        self._on_skip = on_skip

    def resolve_keys(self) -> Dict[str, bytes]:
        keys: Dict[str, bytes] = {}
        for entry in parse_key_entries(self._environ):
            if isinstance(entry, SkippedEntry):
                logger.debug("Skipping key entry %s: %s", entry.source, entry.reason)
                if self._on_skip is not None:
                    self._on_skip(entry)
                continue
            keys[entry.version] = entry.key
        return keys

    def default_version(self) -> str:
        return resolve_current_version(self._environ)

    def snapshot(self) -> KeyRing:
        return KeyRing(self.resolve_keys(), self.default_version())


class StaticKeyRingProvider(KeyRingProvider):
    """
    Fixed key ring.

    Keys may be bytes or configuration text (decoded with decode_key).
    """

    def __init__(
        self,
        keys: Mapping[str, Union[bytes, str]],
        default_version: str = FALLBACK_KEY_VERSION,
    ) -> None:
        decoded = {
            version: key if isinstance(key, bytes) else decode_key(key)
            for version, key in keys.items()
        }
        self._ring = KeyRing(decoded, default_version)

    def snapshot(self) -> KeyRing:
        return self._ring


def resolve_keys(
    environ: Optional[Mapping[str, str]] = None,
    on_skip: Optional[SkipHook] = None,
) -> Dict[str, bytes]:
    """Resolve the version -> key map from the environment."""
    return EnvKeyRingProvider(environ, on_skip).resolve_keys()


def default_version(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the version used when a caller does not specify one."""
    return resolve_current_version(environ)
