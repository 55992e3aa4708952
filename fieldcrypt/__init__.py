"""
Field-Level Encryption Library

AES-256-GCM encryption of individual record fields with versioned keys,
key rotation and deterministic search tokens for equality lookups.

Quick Start
-----------
```python
from fieldcrypt import FieldEncryptionService

# ENCRYPTION_KEY="v2:<base64 key>,v1:<base64 key>", KMS_KEY_ID="v2", SEARCH_SALT="..."
service = FieldEncryptionService.from_env()

# Before writing
email_encrypted, email_hash = service.protect("jane@example.com")

# After reading
email = service.decrypt(email_encrypted)

# Searching
service.make_token("  Jane@Example.com ") == email_hash  # True

# Rotating
service.rotate(email_encrypted, "v3")
```

Key Features
------------
- **AES-256-GCM**: 96-bit random nonce, 128-bit tag, no associated data
- **Wire format**: ``version:nonce_hex:ciphertext_hex:tag_hex``
- **Key ring**: keys re-read from the environment on every call
- **Fallback decryption**: values decrypt with any key in the ring
- **Search tokens**: BLAKE2b over salt + normalized value, 64 hex chars
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    SecureKey,
    generate_encryption_key,
    generate_random_bytes,
    generate_search_salt,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ConfigError,
    DecryptionError,
    EncryptionError,
    FieldCryptError,
    FormatError,
    KeyLengthError,
    KeyNotFoundError,
    StorageError,
)

# =============================================================================
# Key Ring / Format Exports
# =============================================================================

from .formats import EncryptedField, is_encrypted, version_of
from .keyring import (
    EnvKeyRingProvider,
    KeyRing,
    KeyRingProvider,
    ParsedEntry,
    SkippedEntry,
    StaticKeyRingProvider,
    decode_key,
)

# =============================================================================
# Service Exports (Primary API)
# =============================================================================

from .batch import decrypt_fields, encrypt_fields
from .cipher import FieldCipher
from .records import RecordEncryptionPolicy
from .rotation import KeyRotation, RotationStats
from .service import FieldEncryptionService
from .tokens import SearchTokenGenerator

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "SecureKey",
    "generate_random_bytes",
    "generate_encryption_key",
    "generate_search_salt",
    # Errors
    "FieldCryptError",
    "ConfigError",
    "KeyNotFoundError",
    "KeyLengthError",
    "FormatError",
    "EncryptionError",
    "DecryptionError",
    "StorageError",
    # Key ring / format
    "KeyRing",
    "KeyRingProvider",
    "EnvKeyRingProvider",
    "StaticKeyRingProvider",
    "ParsedEntry",
    "SkippedEntry",
    "decode_key",
    "EncryptedField",
    "is_encrypted",
    "version_of",
    # Service (Primary API)
    "FieldCipher",
    "KeyRotation",
    "RotationStats",
    "SearchTokenGenerator",
    "RecordEncryptionPolicy",
    "encrypt_fields",
    "decrypt_fields",
    "FieldEncryptionService",
]
