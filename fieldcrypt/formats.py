"""
Wire format for encrypted fields.

Format: ``{version}:{nonce_hex}:{ciphertext_hex}:{tag_hex}``
Example: ``v1:a1b2...(24 hex):1a2b...:9f8e...(32 hex)``
"""

from __future__ import annotations

import binascii
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .crypto import NONCE_SIZE, TAG_SIZE
from .errors import FormatError

SEPARATOR = ":"
ENCRYPTED_PATTERN = re.compile(
    r"^v\d+:[0-9a-f]+:[0-9a-f]+:[0-9a-f]+$", re.IGNORECASE
)
HEX_PATTERN = re.compile(r"[0-9a-fA-F]*")


@dataclass(frozen=True)
class EncryptedField:
    """Parsed encrypted field value."""

    version: str
    nonce: bytes  # 12 bytes
    ciphertext: bytes
    tag: bytes  # 16 bytes

    def __post_init__(self) -> None:
        if len(self.nonce) != NONCE_SIZE:
            raise FormatError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(self.nonce)}"
            )
        if len(self.tag) != TAG_SIZE:
            raise FormatError(f"Invalid tag size: expected {TAG_SIZE}, got {len(self.tag)}")

    def to_string(self) -> str:
        return encode(self.version, self.nonce, self.ciphertext, self.tag)

    @classmethod
    def from_string(cls, text: str) -> EncryptedField:
        return cls(*decode(text))

    def __str__(self) -> str:
        return self.to_string()


def encode(version: str, nonce: bytes, ciphertext: bytes, tag: bytes) -> str:
    """Join the version and the hex-encoded segments with ':'."""
    return SEPARATOR.join((version, nonce.hex(), ciphertext.hex(), tag.hex()))


def decode(text: str) -> Tuple[str, bytes, bytes, bytes]:
    """
    Split an encrypted field into (version, nonce, ciphertext, tag).

    Raises:
        FormatError: If there are not exactly 4 segments or a byte segment
            is not valid hex
    """
    parts = text.split(SEPARATOR)
    if len(parts) != 4:
        raise FormatError("Invalid encrypted field format")

    version, nonce_hex, ciphertext_hex, tag_hex = parts
    if not all(HEX_PATTERN.fullmatch(segment) for segment in parts[1:]):
        raise FormatError("Invalid hex in encrypted field")

    try:
        nonce = bytes.fromhex(nonce_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
        tag = bytes.fromhex(tag_hex)
    except (ValueError, binascii.Error):
        raise FormatError("Invalid hex in encrypted field") from None

    return version, nonce, ciphertext, tag


def is_encrypted(value: Optional[str]) -> bool:
    """Check whether a value looks like an encrypted field (has a version prefix)."""
    if not value or not isinstance(value, str):
        return False
    return ENCRYPTED_PATTERN.fullmatch(value) is not None


def version_of(value: Optional[str]) -> Optional[str]:
    """Return the key version of an encrypted value, or None."""
    if not is_encrypted(value):
        return None
    return value.split(SEPARATOR, 1)[0]
