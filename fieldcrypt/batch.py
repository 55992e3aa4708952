"""Encrypt or decrypt a set of named fields at once."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .cipher import FieldCipher
from .errors import FieldCryptError

logger = logging.getLogger(__name__)


def encrypt_fields(cipher: FieldCipher, fields: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    Encrypt every non-empty value.

    Empty values are left out of the result entirely.
    """
    return {name: cipher.encrypt(value) for name, value in fields.items() if value}


def decrypt_fields(cipher: FieldCipher, fields: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    Decrypt every non-empty value.

    A field that fails to decrypt becomes "" and the rest still decrypt.
    """
    decrypted: Dict[str, str] = {}

    for name, value in fields.items():
        if not value:
            continue
        try:
            decrypted[name] = cipher.decrypt(value)
        except FieldCryptError as e:
            logger.warning("Failed to decrypt field %s: %s", name, type(e).__name__)
            decrypted[name] = ""

    return decrypted
