"""
fieldcrypt command line.

Usage:
    fieldcrypt generate-key
    fieldcrypt generate-salt
    fieldcrypt encrypt-existing --table contacts --field email --field notes --searchable email
    fieldcrypt rotate-keys --table contacts --field email --version v2 --dry-run
    fieldcrypt benchmark

Database commands read DATABASE_URL (and the key settings) from the
environment or a .env file.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from typing import Optional, Tuple

import asyncpg
import click

from .config import (
    CURRENT_KEY_ENV,
    ENCRYPTION_KEY_ENV,
    SEARCH_SALT_ENV,
    load_env_file,
    resolve_current_version,
)
from .crypto import generate_encryption_key, generate_search_salt
from .errors import FieldCryptError
from .keyring import StaticKeyRingProvider
from .postgres import MigrationStats, PostgresFieldMigrator
from .service import FieldEncryptionService


@click.group()
@click.option("--env-file", default=None, help="Path to a .env file (default: ./.env)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(env_file: Optional[str], verbose: bool) -> None:
    """Field-level encryption tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_env_file(env_file)


@cli.command("generate-key")
def generate_key() -> None:
    """Print a new base64 32-byte key for ENCRYPTION_KEY."""
    click.echo(generate_encryption_key())


@cli.command("generate-salt")
def generate_salt() -> None:
    """Print a new hex salt for SEARCH_SALT."""
    click.echo(generate_search_salt())


def _require_env(*names: str) -> str:
    missing = [name for name in names if not os.environ.get(name)]
    if missing:
        click.echo(f"ERROR: {', '.join(missing)} must be set in environment or .env file", err=True)
        sys.exit(1)
    return os.environ["DATABASE_URL"]


async def _run_migration(database_url: str, action) -> MigrationStats:
    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        raise click.ClickException("Failed to create connection pool")
    try:
        migrator = PostgresFieldMigrator(pool, FieldEncryptionService.from_env())
        return await action(migrator)
    finally:
        await pool.close()


def _report(stats: MigrationStats, dry_run: bool) -> None:
    if dry_run:
        click.echo("[DRY RUN] No data was modified")
    click.echo(f"Rows: {stats.total}")
    click.echo(f"Updated: {stats.updated}")
    click.echo(f"Already done: {stats.already_done}")
    click.echo(f"Failed: {stats.failed}")
    for row_id, message in stats.errors:
        click.echo(f"  - {row_id}: {message}", err=True)
    if stats.failed:
        sys.exit(1)


@cli.command("encrypt-existing")
@click.option("--table", required=True, help="Table holding the plaintext columns")
@click.option("--field", "fields", multiple=True, required=True, help="Column to encrypt")
@click.option("--searchable", multiple=True, help="Column that also gets a <column>_hash token")
@click.option("--id-column", default="id", show_default=True)
@click.option("--batch-size", default=100, show_default=True, type=click.IntRange(min=1))
@click.option("--dry-run", is_flag=True, help="Show what would change without writing")
def encrypt_existing(
    table: str,
    fields: Tuple[str, ...],
    searchable: Tuple[str, ...],
    id_column: str,
    batch_size: int,
    dry_run: bool,
) -> None:
    """Encrypt legacy plaintext columns in place."""
    required = ["DATABASE_URL", ENCRYPTION_KEY_ENV]
    if searchable:
        required.append(SEARCH_SALT_ENV)
    database_url = _require_env(*required)

    async def action(migrator: PostgresFieldMigrator) -> MigrationStats:
        return await migrator.encrypt_existing(
            table, fields, searchable, id_column=id_column, batch_size=batch_size, dry_run=dry_run
        )

    _report(asyncio.run(_run_migration(database_url, action)), dry_run)


@cli.command("rotate-keys")
@click.option("--table", required=True)
@click.option("--field", "fields", multiple=True, required=True, help="Encrypted column")
@click.option("--version", "new_version", default=None, help="Target version (default: KMS_KEY_ID)")
@click.option("--id-column", default="id", show_default=True)
@click.option("--limit", default=None, type=click.IntRange(min=1), help="Rotate at most N rows")
@click.option("--dry-run", is_flag=True)
def rotate_keys(
    table: str,
    fields: Tuple[str, ...],
    new_version: Optional[str],
    id_column: str,
    limit: Optional[int],
    dry_run: bool,
) -> None:
    """Re-encrypt columns under the latest key version."""
    database_url = _require_env("DATABASE_URL", ENCRYPTION_KEY_ENV)
    if new_version is None:
        if not os.environ.get(CURRENT_KEY_ENV):
            click.echo(f"ERROR: pass --version or set {CURRENT_KEY_ENV}", err=True)
            sys.exit(1)
        new_version = resolve_current_version()

    async def action(migrator: PostgresFieldMigrator) -> MigrationStats:
        return await migrator.rotate_keys(
            table, fields, new_version, id_column=id_column, limit=limit, dry_run=dry_run
        )

    _report(asyncio.run(_run_migration(database_url, action)), dry_run)


@cli.command()
@click.option("--iterations", default=1000, show_default=True, type=click.IntRange(min=1))
def benchmark(iterations: int) -> None:
    """Measure encrypt / decrypt / token throughput with throwaway keys."""
    service = FieldEncryptionService(
        StaticKeyRingProvider({"v1": generate_encryption_key(), "v2": generate_encryption_key()}),
        salt_source=lambda: "benchmark-salt",
    )
    plaintext = "jane.doe@example.com"

    def measure(label: str, fn) -> None:
        start = time.perf_counter()
        for _ in range(iterations):
            fn()
        duration = time.perf_counter() - start
        click.echo(
            f"[PERF] {label:<20} {duration * 1000:.3f}ms total | "
            f"{iterations / duration:.2f} ops/sec"
        )

    encrypted_v1 = service.encrypt(plaintext, "v1")
    encrypted_v2 = service.encrypt(plaintext, "v2")
    try:
        measure("Encryption", lambda: service.encrypt(plaintext))
        measure("Decryption", lambda: service.decrypt(encrypted_v1))
        measure("Decryption (v2)", lambda: service.decrypt(encrypted_v2))
        measure("Rotation v1 -> v2", lambda: service.rotate(encrypted_v1, "v2"))
        measure("Search token", lambda: service.make_token(plaintext))
    except FieldCryptError as e:
        raise click.ClickException(str(e))


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
