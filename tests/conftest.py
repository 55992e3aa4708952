"""
Pytest configuration and fixtures for field encryption tests.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List

import asyncpg
import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from dotenv import load_dotenv

from fieldcrypt import (
    EnvKeyRingProvider,
    FieldCipher,
    FieldEncryptionService,
    SearchTokenGenerator,
)
from fieldcrypt.formats import encode

KEY_V1_HEX = "00" * 32
KEY_V2_HEX = "fedcba9876543210" * 4
TEST_SALT = "test-salt-32-bytes-for-testing!"


def seal_bytes(data: bytes, key_hex: str = KEY_V1_HEX, version: str = "v1") -> str:
    """Encrypt raw bytes straight through AES-GCM, skipping the UTF-8 step."""
    nonce = os.urandom(12)
    sealed = AESGCM(bytes.fromhex(key_hex)).encrypt(nonce, data, None)
    return encode(version, nonce, sealed[:-16], sealed[-16:])


@pytest.fixture
def env() -> Dict[str, str]:
    """Environment with two keys (v1 consolidated, v2 discrete) and a salt."""
    return {
        "ENCRYPTION_KEY": f"v1:{KEY_V1_HEX}",
        "ENCRYPTION_KEY_V2": KEY_V2_HEX,
        "SEARCH_SALT": TEST_SALT,
    }


@pytest.fixture
def provider(env: Dict[str, str]) -> EnvKeyRingProvider:
    return EnvKeyRingProvider(env)


@pytest.fixture
def cipher(provider: EnvKeyRingProvider) -> FieldCipher:
    return FieldCipher(provider)


@pytest.fixture
def tokens(env: Dict[str, str]) -> SearchTokenGenerator:
    return SearchTokenGenerator(environ=env)


@pytest.fixture
def service(env: Dict[str, str]) -> FieldEncryptionService:
    return FieldEncryptionService.from_env(env)


class FakePool:
    """
    In-memory stand-in for asyncpg.Pool.

    Understands only the statements PostgresFieldMigrator issues.
    """

    def __init__(self, rows: List[Dict[str, Any]], id_column: str = "id") -> None:
        self.rows = rows
        self.id_column = id_column
        self.executed: List[tuple] = []

    async def fetchval(self, query: str, *args: Any) -> int:
        assert query.startswith("SELECT count(*)")
        return len(self.rows)

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        columns = re.findall(r'"(\w+)"', query.split(" FROM ")[0])
        ordered = sorted(self.rows, key=lambda r: r[self.id_column])
        limit = offset = None
        params = list(args)
        if " LIMIT " in query:
            limit = params.pop(0)
        if " OFFSET " in query:
            offset = params.pop(0)
        start = offset or 0
        end = start + limit if limit is not None else None
        return [{c: row.get(c) for c in columns} for row in ordered[start:end]]

    async def execute(self, query: str, *args: Any) -> str:
        self.executed.append((query, args))
        set_clause = query.split(" SET ")[1].split(" WHERE ")[0]
        columns = re.findall(r'"(\w+)" = \$\d+', set_clause)
        row_id = args[-1]
        for row in self.rows:
            if row[self.id_column] == row_id:
                row.update(dict(zip(columns, args)))
        return "UPDATE 1"

    async def close(self) -> None:
        pass


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    yield pool

    await pool.close()
