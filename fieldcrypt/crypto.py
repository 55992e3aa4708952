"""
Cryptographic primitives for AES-256-GCM field encryption.

This module provides:
- SecureKey: Secure key wrapper with automatic zeroization
- AesGcmCipher: AES-256-GCM encryption/decryption with a detached tag
- Key and salt generators for initial setup
"""

from __future__ import annotations

import base64
import secrets
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError, EncryptionError, FormatError, KeyLengthError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)
SEARCH_SALT_SIZE: int = 32


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes", "version")

    def __init__(self, key_bytes: bytes | bytearray, version: str = "") -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise TypeError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)
        self.version = version

    @classmethod
    def generate(cls, version: str = "") -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE), version)

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return f"SecureKey({self.version or '?'}, [REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    AESGCM returns ciphertext with the 16-byte tag appended; these helpers
    split and rejoin it so the tag can be stored as its own segment.
    """

    @staticmethod
    def encrypt(key: SecureKey, plaintext: bytes) -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt plaintext with AES-256-GCM and a fresh random nonce.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt

        Returns:
            (nonce, ciphertext, tag)

        Raises:
            KeyLengthError: If key size is invalid
            EncryptionError: If the cipher fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise KeyLengthError(key.version, len(key))

        nonce = secrets.token_bytes(NONCE_SIZE)

        try:
            sealed = AESGCM(key.as_bytes()).encrypt(nonce, plaintext, None)
        except Exception as e:
            raise EncryptionError("Field encryption failed") from e

        return nonce, sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    @staticmethod
    def decrypt(key: SecureKey, nonce: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        """
        Decrypt and authenticate ciphertext with AES-256-GCM.

        Raises:
            KeyLengthError: If key size is invalid
            FormatError: If nonce or tag size is invalid
            DecryptionError: If authentication fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise KeyLengthError(key.version, len(key))

        if len(nonce) != NONCE_SIZE:
            raise FormatError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(nonce)}"
            )
        if len(tag) != TAG_SIZE:
            raise FormatError(f"Invalid tag size: expected {TAG_SIZE}, got {len(tag)}")

        try:
            return AESGCM(key.as_bytes()).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise DecryptionError("Field decryption failed") from None


def generate_random_bytes(length: int) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(length)


def generate_encryption_key() -> str:
    """Generate a new base64-encoded 32-byte key for ENCRYPTION_KEY."""
    return base64.b64encode(generate_random_bytes(AES_256_KEY_SIZE)).decode("ascii")


def generate_search_salt() -> str:
    """Generate a 64-character hex salt for SEARCH_SALT."""
    return generate_random_bytes(SEARCH_SALT_SIZE).hex()
