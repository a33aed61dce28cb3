"""
Local override cache for the Lumen data layer.

Durable per-profile store of records created or mutated while the remote
store was unavailable (or the remote write failed). One JSON file per
collection namespace lives in ~/.lumen/cache/ (configurable):

    organizations.json
    identities.json
    learning-units.json
    tasks.json
    submissions.json

Each file holds an ordered list of records. Missing or corrupt files read as
an empty collection. Every write rewrites the whole file through a temp file
and os.replace, so readers never see a half-written collection.
"""

from __future__ import annotations

import fcntl
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

ORGANIZATIONS = "organizations"
IDENTITIES = "identities"
LEARNING_UNITS = "learning-units"
TASKS = "tasks"
SUBMISSIONS = "submissions"

NAMESPACES = (ORGANIZATIONS, IDENTITIES, LEARNING_UNITS, TASKS, SUBMISSIONS)

DEFAULT_CACHE_DIR = Path.home() / ".lumen" / "cache"


class LocalOverrideCache:
    """
    File-backed override cache.

    The cache is the authoritative record of local intent for the current
    session: entries are never deleted automatically, even after a
    successful remote write.
    """

    def __init__(self, cache_dir: Path | None = None):
        self.cache_dir = Path(cache_dir or DEFAULT_CACHE_DIR)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"LocalOverrideCache initialized at {self.cache_dir}")

    def _path(self, key: str) -> Path:
        if key not in NAMESPACES:
            raise KeyError(f"Unknown cache namespace: {key}")
        return self.cache_dir / f"{key}.json"

    # ========================================
    # Read Operations
    # ========================================

    def load(self, key: str) -> list[dict[str, Any]]:
        """Load a collection, defaulting to empty on missing or corrupt data."""
        filepath = self._path(key)
        if not filepath.exists():
            return []

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache file {filepath.name}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Ignoring malformed cache file {filepath.name}")
            return []
        return [record for record in data if isinstance(record, dict) and "id" in record]

    def get(self, key: str, record_id: str) -> dict[str, Any] | None:
        """Point lookup; the last entry with a given id wins."""
        found = None
        for record in self.load(key):
            if record.get("id") == record_id:
                found = record
        return found

    # ========================================
    # Write Operations
    # ========================================

    def append(self, key: str, record: dict[str, Any]) -> None:
        """Add a record and immediately re-persist the full collection."""
        with self._locked(key):
            records = self.load(key)
            records.append(record)
            self._write(key, records)
        logger.debug(f"Cached {key} record {record.get('id')} locally")

    def patch(self, key: str, record_id: str, fields: dict[str, Any]) -> bool:
        """
        Merge ``fields`` into the stored record with ``record_id``.

        Only learning units are structurally edited in place; other
        collections go through append or compare_and_set.
        """
        if key != LEARNING_UNITS:
            raise ValueError(f"patch is only supported for {LEARNING_UNITS}, not {key}")

        with self._locked(key):
            records = self.load(key)
            matched = False
            for record in records:
                if record.get("id") == record_id:
                    record.update(fields)
                    matched = True
            if matched:
                self._write(key, records)
        return matched

    def compare_and_set(
        self,
        key: str,
        record: dict[str, Any],
        expected_revision: int | None,
    ) -> bool:
        """
        Replace the record with the same id if its revision is unchanged.

        ``expected_revision=None`` means "I saw no local copy": the write
        succeeds only if the cache still has no record with that id. On
        success the stored record carries ``expected_revision + 1`` (or the
        incoming record's revision + 1 for a first write).

        Returns False when another writer got there first.
        """
        record_id = record["id"]
        with self._locked(key):
            records = self.load(key)
            positions = [i for i, r in enumerate(records) if r.get("id") == record_id]
            current = records[positions[-1]] if positions else None
            current_revision = current.get("revision", 0) if current is not None else None

            if current_revision != expected_revision:
                logger.debug(
                    f"CAS conflict on {key}/{record_id}: "
                    f"expected={expected_revision} actual={current_revision}"
                )
                return False

            base_revision = expected_revision if expected_revision is not None else record.get("revision", 0)
            stored = {**record, "revision": base_revision + 1}
            if positions:
                # Collapse duplicates into the first position
                records[positions[0]] = stored
                for index in reversed(positions[1:]):
                    del records[index]
            else:
                records.append(stored)
            self._write(key, records)
        return True

    def clear(self, key: str | None = None) -> None:
        """Remove one namespace or the whole cache."""
        keys = [key] if key else list(NAMESPACES)
        for name in keys:
            filepath = self._path(name)
            if filepath.exists():
                filepath.unlink()

    # ========================================
    # Internals
    # ========================================

    def _write(self, key: str, records: list[dict[str, Any]]) -> None:
        filepath = self._path(key)
        tmp_path = filepath.with_suffix(f".json.{os.getpid()}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp_path, filepath)

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """
        Exclusive advisory lock shared by every process using this cache directory.

        The lock file is never removed; the kernel drops the flock when the
        holder closes it or dies, so there is no stale-lock recovery to race on.
        """
        lock_path = self.cache_dir / f"{key}.lock"
        with open(lock_path, "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
