"""
Record-level encryption policy.

Applies field encryption to whole records on their way to and from a
store, and rewrites equality filters on searchable fields so they match
against the stored search tokens instead of the ciphertext:

- encrypt_record: encrypt configured fields, add ``<field>_hash`` tokens
- decrypt_record: decrypt configured fields (a record or a list of records)
- transform_where: ``{"email": "a@b.com"}`` -> ``{"email_hash": "<token>"}``

Only equality (plain value, ``equals``, ``in``) can be served by tokens;
substring operators such as ``contains`` are left untouched.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .cipher import FieldCipher
from .errors import FieldCryptError
from .formats import is_encrypted
from .tokens import SearchTokenGenerator

logger = logging.getLogger(__name__)

_LOGICAL_OPERATORS = ("AND", "OR", "NOT")


class RecordEncryptionPolicy:
    """
    Which fields of a record are encrypted, and which are searchable.

    Searchable fields must also be encrypted fields.
    """

    def __init__(
        self,
        cipher: FieldCipher,
        tokens: SearchTokenGenerator,
        encrypted_fields: Iterable[str],
        searchable_fields: Iterable[str] = (),
        hash_suffix: str = "_hash",
    ) -> None:
        self._cipher = cipher
        self._tokens = tokens
        self.encrypted_fields = tuple(encrypted_fields)
        self.searchable_fields = tuple(searchable_fields)
        self.hash_suffix = hash_suffix

        unknown = set(self.searchable_fields) - set(self.encrypted_fields)
        if unknown:
            raise ValueError(f"Searchable fields must be encrypted: {sorted(unknown)}")

    def hash_field(self, name: str) -> str:
        return f"{name}{self.hash_suffix}"

    def encrypt_record(self, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        """Encrypt the configured fields of one record for writing."""
        if data is None:
            return None

        encrypted = dict(data)
        for name in self.encrypted_fields:
            value = encrypted.get(name)
            if not value or is_encrypted(value):
                continue

            encrypted[name] = self._cipher.encrypt(value)
            if name in self.searchable_fields:
                encrypted[self.hash_field(name)] = self._tokens.make_token(value)

        return encrypted

    def decrypt_record(
        self, data: Union[None, Mapping[str, Any], List[Mapping[str, Any]]]
    ) -> Union[None, Dict[str, Any], List[Any]]:
        """
        Decrypt the configured fields of a record or a list of records.

        A field that fails to decrypt becomes None.
        """
        if data is None:
            return None
        if isinstance(data, list):
            return [self.decrypt_record(item) for item in data]

        decrypted = dict(data)
        for name in self.encrypted_fields:
            value = decrypted.get(name)
            if not is_encrypted(value):
                continue
            try:
                decrypted[name] = self._cipher.decrypt(value)
            except FieldCryptError as e:
                logger.warning("Failed to decrypt record field %s: %s", name, type(e).__name__)
                decrypted[name] = None

        return decrypted

    def transform_where(self, where: Any) -> Any:
        """Rewrite equality filters on searchable fields to token filters."""
        if not isinstance(where, Mapping):
            return where

        transformed = dict(where)
        for name in self.searchable_fields:
            if name not in transformed:
                continue
            query = transformed[name]
            replacement = self._token_filter(query)
            if replacement is None:
                continue
            del transformed[name]
            transformed[self.hash_field(name)] = replacement

        for operator in _LOGICAL_OPERATORS:
            nested = transformed.get(operator)
            if isinstance(nested, list):
                transformed[operator] = [self.transform_where(item) for item in nested]
            elif isinstance(nested, Mapping):
                transformed[operator] = self.transform_where(nested)

        return transformed

    def _token_filter(self, query: Any) -> Any:
        if isinstance(query, str):
            return self._tokens.make_token(query)
        if isinstance(query, Mapping):
            if "equals" in query:
                return {"equals": self._tokens.make_token(query["equals"])}
            if "in" in query:
                return {"in": [self._tokens.make_token(v) for v in query["in"]]}
        return None
