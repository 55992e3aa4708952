"""
Field encryption service.

One object covering the calling-layer contract: encrypt + token before
writing, decrypt after reading, is_encrypted during migrations, and
rotate / batch_rotate for key rotation.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .batch import decrypt_fields, encrypt_fields
from .cipher import FieldCipher
from .formats import is_encrypted, version_of
from .keyring import EnvKeyRingProvider, KeyRingProvider, SkipHook
from .records import RecordEncryptionPolicy
from .rotation import KeyRotation, RotationStats
from .tokens import SaltSource, SearchTokenGenerator


class FieldEncryptionService:
    """High-level field encryption API."""

    def __init__(
        self,
        provider: Optional[KeyRingProvider] = None,
        salt_source: Optional[SaltSource] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._cipher = FieldCipher(provider or EnvKeyRingProvider(environ))
        self._rotation = KeyRotation(self._cipher)
        self._tokens = SearchTokenGenerator(salt_source, environ)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        on_skip: Optional[SkipHook] = None,
    ) -> FieldEncryptionService:
        """
        Build a service that reads keys and salt from the environment.

        Args:
            environ: Mapping to read instead of os.environ
            on_skip: Diagnostics hook for malformed key entries
        """
        return cls(EnvKeyRingProvider(environ, on_skip), environ=environ)

    @property
    def cipher(self) -> FieldCipher:
        return self._cipher

    @property
    def tokens(self) -> SearchTokenGenerator:
        return self._tokens

    def encrypt(self, plaintext: str, version: Optional[str] = None) -> str:
        return self._cipher.encrypt(plaintext, version)

    def decrypt(self, encrypted: str) -> str:
        return self._cipher.decrypt(encrypted)

    def make_token(self, value: str) -> str:
        return self._tokens.make_token(value)

    def protect(self, value: str, version: Optional[str] = None) -> Tuple[str, str]:
        """Return (ciphertext, search token) for a value about to be stored."""
        return self.encrypt(value, version), self.make_token(value)

    def rotate(self, encrypted: str, new_version: str) -> str:
        return self._rotation.rotate(encrypted, new_version)

    def batch_rotate(
        self,
        records: Iterable[Mapping[str, Any]],
        field_names: Sequence[str],
        new_version: str,
    ) -> List[Dict[str, Any]]:
        return self._rotation.batch_rotate(records, field_names, new_version)

    def batch_rotate_with_stats(
        self,
        records: Iterable[Mapping[str, Any]],
        field_names: Sequence[str],
        new_version: str,
    ) -> Tuple[List[Dict[str, Any]], RotationStats]:
        return self._rotation.batch_rotate_with_stats(records, field_names, new_version)

    def encrypt_fields(self, fields: Mapping[str, Optional[str]]) -> Dict[str, str]:
        return encrypt_fields(self._cipher, fields)

    def decrypt_fields(self, fields: Mapping[str, Optional[str]]) -> Dict[str, str]:
        return decrypt_fields(self._cipher, fields)

    def record_policy(
        self,
        encrypted_fields: Iterable[str],
        searchable_fields: Iterable[str] = (),
        hash_suffix: str = "_hash",
    ) -> RecordEncryptionPolicy:
        return RecordEncryptionPolicy(
            self._cipher, self._tokens, encrypted_fields, searchable_fields, hash_suffix
        )

    @staticmethod
    def is_encrypted(value: Optional[str]) -> bool:
        return is_encrypted(value)

    @staticmethod
    def version_of(value: Optional[str]) -> Optional[str]:
        return version_of(value)
