"""Key-value persistence backends for progress data."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class KeyValueBackend(Protocol):
    """String-keyed durable medium that can enumerate keys by prefix."""

    def get(self, key: str) -> str | None: ...

    def write(self, updates: Mapping[str, str]) -> None: ...

    def delete(self, keys: Iterable[str]) -> None: ...

    def keys_with_prefix(self, prefix: str) -> list[str]: ...

    def close(self) -> None: ...


class SqliteKeyValueStore:
    """SQLite-backed key-value table.

    Multi-key writes and deletes run in a single transaction. Any SQLite or
    filesystem failure is raised as `StoreUnavailableError`.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and bring its schema up to date."""
        try:
            if isinstance(db_path, Path):
                db_path.parent.mkdir(parents=True, exist_ok=True)
                target = str(db_path)
            else:
                target = db_path
            self._conn = sqlite3.connect(target)
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailableError(f"Could not open progress database '{db_path}': {exc}") from exc
        try:
            self._apply_migrations()
        except StoreUnavailableError:
            self._conn.close()
            raise
        except sqlite3.Error as exc:
            self._conn.close()
            raise StoreUnavailableError(f"Could not open progress database '{db_path}': {exc}") from exc

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise StoreUnavailableError(
                f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
            )

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )
            logger.debug("Applied progress schema migration %d", version)

    def _migrate_to_v1(self) -> None:
        """Create the key-value entries table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """)

    def get(self, key: str) -> str | None:
        """Return the stored value for a key."""
        try:
            row = self._conn.execute("SELECT value FROM entries WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Could not read '{key}': {exc}") from exc
        if row is None:
            return None
        return str(row["value"])

    def write(self, updates: Mapping[str, str]) -> None:
        """Upsert all pairs in one transaction."""
        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO entries (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    list(updates.items()),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Could not write progress data: {exc}") from exc

    def delete(self, keys: Iterable[str]) -> None:
        """Remove all keys in one transaction."""
        try:
            with self._conn:
                self._conn.executemany("DELETE FROM entries WHERE key = ?", [(key,) for key in keys])
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Could not delete progress data: {exc}") from exc

    def keys_with_prefix(self, prefix: str) -> list[str]:
        """Return stored keys starting with prefix, sorted."""
        try:
            rows = self._conn.execute(
                "SELECT key FROM entries WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Could not list progress keys: {exc}") from exc
        return [str(row["key"]) for row in rows]

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()


class MemoryKeyValueStore:
    """Process-local key-value store for sessions without durable storage."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, updates: Mapping[str, str]) -> None:
        self._data.update(updates)

    def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))

    def close(self) -> None:
        self._data.clear()
