"""
Key rotation for encrypted field values.

rotate() re-encrypts one value; batch_rotate() walks records and rotates
every targeted field whose version differs from the target. Running it
again after all fields reach the target version changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from .cipher import FieldCipher
from .formats import is_encrypted, version_of

logger = logging.getLogger(__name__)


@dataclass
class RotationStats:
    """Counts from one batch rotation."""

    records_seen: int = 0
    fields_rotated: int = 0
    fields_skipped: int = 0

    def __str__(self) -> str:
        return (
            f"{self.records_seen} records, {self.fields_rotated} fields rotated, "
            f"{self.fields_skipped} skipped"
        )


class KeyRotation:
    """Re-encrypts values under a new key version."""

    def __init__(self, cipher: FieldCipher) -> None:
        self._cipher = cipher

    def rotate(self, encrypted: str, new_version: str) -> str:
        """
        Decrypt with whatever key works and re-encrypt under new_version.

        Errors from either step propagate unchanged.
        """
        if not encrypted:
            return ""

        plaintext = self._cipher.decrypt(encrypted)
        return self._cipher.encrypt(plaintext, new_version)

    def batch_rotate(
        self,
        records: Iterable[Mapping[str, Any]],
        field_names: Sequence[str],
        new_version: str,
    ) -> List[Dict[str, Any]]:
        """
        Rotate the named fields of every record to new_version.

        Returns new dicts; input records are not modified. Missing,
        plaintext and already-current fields pass through unchanged.
        """
        rotated, _ = self.batch_rotate_with_stats(records, field_names, new_version)
        return rotated

    def batch_rotate_with_stats(
        self,
        records: Iterable[Mapping[str, Any]],
        field_names: Sequence[str],
        new_version: str,
    ) -> Tuple[List[Dict[str, Any]], RotationStats]:
        """Like batch_rotate, also returning the counts for this call."""
        stats = RotationStats()
        rotated: List[Dict[str, Any]] = []

        for record in records:
            stats.records_seen += 1
            updated = dict(record)

            for name in field_names:
                value = record.get(name)
                if not is_encrypted(value):
                    continue

                current = version_of(value)
                if current == new_version:
                    stats.fields_skipped += 1
                    continue

                updated[name] = self.rotate(value, new_version)
                stats.fields_rotated += 1
                logger.info("Rotated field %s: %s -> %s", name, current, new_version)

            rotated.append(updated)

        return rotated, stats
