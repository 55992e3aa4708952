"""
PostgreSQL migration runner for encrypted columns.

This module provides:
- PostgresFieldMigrator: encrypts legacy plaintext columns and rotates
  encrypted columns to a new key version
- MigrationStats: per-run counters

The field cipher itself never touches a database; this runner is a calling
layer that reads rows through an asyncpg pool, transforms values with a
FieldEncryptionService and writes them back.

Both operations are safe to re-run:
- encrypt_existing skips values that already look encrypted
- rotate_keys skips values already on the target version
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg

from .errors import FieldCryptError, StorageError
from .formats import is_encrypted, version_of
from .service import FieldEncryptionService

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class MigrationStats:
    """Counters for one migration run."""

    total: int = 0
    updated: int = 0
    already_done: int = 0
    failed: int = 0
    errors: List[Tuple[Any, str]] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"total={self.total} updated={self.updated} "
            f"already_done={self.already_done} failed={self.failed}"
        )


def quote_identifier(name: str) -> str:
    """Validate and double-quote a table or column name."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


# =============================================================================
# Migrator
# =============================================================================


class PostgresFieldMigrator:
    """
    Bulk encryption and key rotation over a PostgreSQL table.

    Args:
        pool: asyncpg connection pool
        service: FieldEncryptionService used for every value
    """

    def __init__(self, pool: asyncpg.Pool, service: FieldEncryptionService) -> None:
        self._pool = pool
        self._service = service

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    async def encrypt_existing(
        self,
        table: str,
        fields: Sequence[str],
        searchable: Sequence[str] = (),
        id_column: str = "id",
        batch_size: int = 100,
        dry_run: bool = False,
    ) -> MigrationStats:
        """
        Encrypt plaintext values in the given columns.

        Searchable columns also get ``<column>_hash`` set to the search
        token of the plaintext. A failing row is counted and skipped.
        """
        stats = MigrationStats()
        stats.total = await self._count(table)
        logger.info("Found %d rows in %s", stats.total, table)

        offset = 0
        while offset < stats.total:
            rows = await self._fetch(table, id_column, fields, limit=batch_size, offset=offset)
            if not rows:
                break

            for row in rows:
                row_id = row[id_column]
                try:
                    updates: Dict[str, str] = {}
                    for name in fields:
                        value = row[name]
                        if not value:
                            continue
                        if is_encrypted(value):
                            stats.already_done += 1
                            continue
                        updates[name] = self._service.encrypt(value)
                        if name in searchable:
                            updates[f"{name}_hash"] = self._service.make_token(value)

                    if updates:
                        if not dry_run:
                            await self._update(table, id_column, row_id, updates)
                        stats.updated += 1
                        logger.info(
                            "%s row %s: encrypted %s",
                            "Would update" if dry_run else "Updated",
                            row_id,
                            sorted(k for k in updates if k in fields),
                        )
                except (FieldCryptError, StorageError) as e:
                    stats.failed += 1
                    stats.errors.append((row_id, str(e)))
                    logger.error("Failed to encrypt row %s: %s", row_id, e)

            offset += batch_size
            logger.info("Progress: %d/%d", min(offset, stats.total), stats.total)

        return stats

    async def rotate_keys(
        self,
        table: str,
        fields: Sequence[str],
        new_version: str,
        id_column: str = "id",
        limit: Optional[int] = None,
        dry_run: bool = False,
    ) -> MigrationStats:
        """Re-encrypt values whose key version differs from new_version."""
        stats = MigrationStats()
        rows = await self._fetch(table, id_column, fields, limit=limit)
        stats.total = len(rows)

        for row in rows:
            row_id = row[id_column]
            try:
                updates: Dict[str, str] = {}
                for name in fields:
                    value = row[name]
                    if not is_encrypted(value):
                        continue
                    current = version_of(value)
                    if current == new_version:
                        stats.already_done += 1
                        continue
                    updates[name] = self._service.rotate(value, new_version)
                    logger.info("%s for row %s: %s -> %s", name, row_id, current, new_version)

                if updates:
                    if not dry_run:
                        await self._update(table, id_column, row_id, updates)
                    stats.updated += 1
            except (FieldCryptError, StorageError) as e:
                stats.failed += 1
                stats.errors.append((row_id, str(e)))
                logger.error("Failed to rotate row %s: %s", row_id, e)

        return stats

    async def _count(self, table: str) -> int:
        query = f"SELECT count(*) FROM {quote_identifier(table)}"
        try:
            return await self._pool.fetchval(query)
        except Exception as e:
            raise StorageError(f"Failed to count rows: {e}")

    async def _fetch(
        self,
        table: str,
        id_column: str,
        fields: Sequence[str],
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Any]:
        columns = ", ".join(quote_identifier(c) for c in (id_column, *fields))
        query = (
            f"SELECT {columns} FROM {quote_identifier(table)} "
            f"ORDER BY {quote_identifier(id_column)}"
        )
        args: List[Any] = []
        if limit is not None:
            args.append(limit)
            query += f" LIMIT ${len(args)}"
        if offset:
            args.append(offset)
            query += f" OFFSET ${len(args)}"

        try:
            return await self._pool.fetch(query, *args)
        except Exception as e:
            raise StorageError(f"Failed to fetch rows: {e}")

    async def _update(
        self, table: str, id_column: str, row_id: Any, updates: Dict[str, str]
    ) -> None:
        assignments = ", ".join(
            f"{quote_identifier(name)} = ${index}"
            for index, name in enumerate(updates, start=1)
        )
        query = (
            f"UPDATE {quote_identifier(table)} SET {assignments} "
            f"WHERE {quote_identifier(id_column)} = ${len(updates) + 1}"
        )
        try:
            await self._pool.execute(query, *updates.values(), row_id)
        except Exception as e:
            raise StorageError(f"Failed to update row {row_id}: {e}")
