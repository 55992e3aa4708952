"""
Field cipher: AES-256-GCM encryption of single string values.

Encryption uses the requested key version (default: current version).
Decryption tries the embedded version first and then every other key in
the ring, so values whose version tag lags a rotation still decrypt.
"""

from __future__ import annotations

import logging
from typing import Optional

from .crypto import AesGcmCipher
from .errors import DecryptionError
from .formats import EncryptedField, decode, encode
from .keyring import EnvKeyRingProvider, KeyRing, KeyRingProvider

logger = logging.getLogger(__name__)


class FieldCipher:
    """
    Encrypts and decrypts field values in the versioned wire format.

    The key ring is taken from the provider on every call.
    """

    def __init__(self, provider: Optional[KeyRingProvider] = None) -> None:
        self._provider = provider or EnvKeyRingProvider()

    @property
    def provider(self) -> KeyRingProvider:
        return self._provider

    def key_ring(self) -> KeyRing:
        return self._provider.snapshot()

    def encrypt(self, plaintext: str, version: Optional[str] = None) -> str:
        """
        Encrypt a field value.

        Empty input returns "" (no value to protect).

        Args:
            plaintext: Value to encrypt
            version: Key version (default: current version)

        Returns:
            ``version:nonce:ciphertext:tag`` as lowercase hex

        Raises:
            KeyNotFoundError: If the version is not configured
            KeyLengthError: If the configured key is not 32 bytes
            EncryptionError: If the cipher fails
        """
        if not plaintext:
            return ""

        ring = self.key_ring()
        version = version or ring.default_version
        key = ring.get_key(version)
        nonce, ciphertext, tag = AesGcmCipher.encrypt(key, plaintext.encode("utf-8"))
        return encode(version, nonce, ciphertext, tag)

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a field value.

        Every usable key is attempted even after a match, so the time taken
        does not reveal whether the embedded version was the one that worked.

        Raises:
            FormatError: If the value is not a well-formed encrypted field
            DecryptionError: If no key in the ring authenticates the value,
                or the authenticated plaintext is not UTF-8
        """
        if not encrypted:
            return ""

        field = EncryptedField(*decode(encrypted))
        ring = self.key_ring()

        plaintext: Optional[bytes] = None
        matched: Optional[str] = None
        for version, key in ring.candidates(field.version):
            try:
                result = AesGcmCipher.decrypt(key, field.nonce, field.ciphertext, field.tag)
            except DecryptionError:
                continue
            if plaintext is None:
                plaintext, matched = result, version

        if plaintext is None:
            raise DecryptionError("Field decryption failed")

        if matched != field.version:
            logger.debug("Value tagged %s decrypted with a fallback key", field.version)

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Field decryption failed") from None
