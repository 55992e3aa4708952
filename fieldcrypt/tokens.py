"""
Search tokens: deterministic salted hashes for equality lookups.

token = first 32 bytes of BLAKE2b-512(salt || lower(strip(value))), as hex.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Mapping, Optional

from .config import resolve_search_salt

TOKEN_BYTES = 32

SaltSource = Callable[[], str]


class SearchTokenGenerator:
    """
    Produces search tokens.

    The salt is fetched from salt_source on every call; by default it is
    resolved from SEARCH_SALT in the environment.
    """

    def __init__(
        self,
        salt_source: Optional[SaltSource] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._salt_source = salt_source or (lambda: resolve_search_salt(environ))

    @staticmethod
    def normalize(value: str) -> str:
        return value.strip().lower()

    def make_token(self, value: str) -> str:
        """
        Hash a value for searching.

        Returns 64 lowercase hex characters, or "" for empty input.

        Raises:
            ConfigError: If no salt is configured
        """
        if not value:
            return ""

        digest = hashlib.blake2b(digest_size=64)
        digest.update(self._salt_source().encode("utf-8"))
        digest.update(self.normalize(value).encode("utf-8"))
        return digest.digest()[:TOKEN_BYTES].hex()
