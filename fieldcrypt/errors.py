"""
Exception classes for field encryption operations.

All errors derive from FieldCryptError so calling layers can catch the whole
family in one place.
"""

from __future__ import annotations


class FieldCryptError(Exception):
    """Base exception for all field encryption operations."""

    pass


class ConfigError(FieldCryptError):
    """Configuration is missing or unusable."""

    pass


class KeyNotFoundError(ConfigError):
    """Key version not present in the key ring."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Encryption key version {version} not found")
        self.version = version


class KeyLengthError(ConfigError):
    """Resolved key is not exactly 32 bytes."""

    def __init__(self, version: str, length: int) -> None:
        super().__init__(
            f"Encryption key {version} must be 32 bytes (256 bits), got {length} bytes"
        )
        self.version = version
        self.length = length


class FormatError(FieldCryptError):
    """Stored value is not a well-formed encrypted field."""

    pass


class EncryptionError(FieldCryptError):
    """Underlying cipher failed while encrypting."""

    pass


class DecryptionError(FieldCryptError):
    """No key in the ring authenticates the value."""

    pass


class StorageError(FieldCryptError):
    """Database error raised by the migration runner."""

    pass
