"""Per-user progress records on top of a key-value backend."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from .errors import ProgressImportError
from .models import ProgressRecord
from .storage import KeyValueBackend

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "curriculum-progress-"
TIMESTAMP_PREFIX = "curriculum-timestamp-"
ACTIVE_USER_KEY = "active-user"


def progress_key(user_id: str) -> str:
    return f"{PROGRESS_PREFIX}{user_id}"


def timestamp_key(user_id: str) -> str:
    return f"{TIMESTAMP_PREFIX}{user_id}"


class ProgressStore:
    """Durable per-user completion records with a last-modified timestamp.

    Each user owns two keys: the JSON-encoded record and the ISO timestamp of
    its latest mutation. Both are always written or removed together, inside
    one backend call and while holding that user's lock.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Hold the lock that serializes access to one user's keys."""
        with self._locks_guard:
            lock = self._locks.setdefault(user_id, threading.RLock())
        with lock:
            yield

    def load(self, user_id: str) -> ProgressRecord:
        """Return the stored record, or an empty one when missing or corrupt."""
        with self._user_lock(user_id):
            raw = self.backend.get(progress_key(user_id))
        if raw is None:
            return {}
        try:
            parsed: object = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring corrupt progress record for user %r", user_id)
            return {}
        if not isinstance(parsed, dict):
            logger.warning("Ignoring progress record for user %r: not an object", user_id)
            return {}
        return {str(code): flag for code, flag in parsed.items() if isinstance(flag, bool)}

    def save(self, user_id: str, record: ProgressRecord) -> None:
        """Persist a record and stamp it with the current time."""
        with self._user_lock(user_id):
            self.backend.write(
                {
                    progress_key(user_id): json.dumps(record),
                    timestamp_key(user_id): datetime.now(UTC).isoformat(),
                }
            )

    def toggle(self, user_id: str, code: str) -> ProgressRecord:
        """Flip one topic's completion flag and return the updated record."""
        with self._user_lock(user_id):
            record = self.load(user_id)
            record[code] = not record.get(code, False)
            self.save(user_id, record)
        return record

    def clear(self, user_id: str) -> None:
        """Remove a user's record and timestamp."""
        with self._user_lock(user_id):
            self.backend.delete([progress_key(user_id), timestamp_key(user_id)])

    def timestamp(self, user_id: str) -> datetime | None:
        """Return when the user's record last changed, if ever."""
        with self._user_lock(user_id):
            raw = self.backend.get(timestamp_key(user_id))
        if raw is None:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring unparseable timestamp for user %r", user_id)
            return None

    def snapshot(self, user_id: str) -> tuple[ProgressRecord, datetime | None]:
        """Return a user's record and timestamp as read under one lock."""
        with self._user_lock(user_id):
            return self.load(user_id), self.timestamp(user_id)

    def import_record(self, user_id: str, raw_text: str) -> ProgressRecord:
        """Replace a user's record with an exported one.

        Raises `ProgressImportError` without touching the store when the text
        is not a JSON object of boolean flags.
        """
        record = parse_record(raw_text)
        self.save(user_id, record)
        return record

    def export_record(self, user_id: str) -> str:
        """Serialize a user's record as a plain JSON object."""
        return json.dumps(self.load(user_id), indent=2, sort_keys=True)

    def enumerate_users(self) -> list[str]:
        """Return users that have a stored progress record."""
        users = [key[len(PROGRESS_PREFIX) :] for key in self.backend.keys_with_prefix(PROGRESS_PREFIX)]
        return [user for user in users if user]

    def get_pointer(self) -> str | None:
        """Return the persisted active-user pointer."""
        return self.backend.get(ACTIVE_USER_KEY)

    def set_pointer(self, user_id: str) -> None:
        """Persist the active-user pointer."""
        self.backend.write({ACTIVE_USER_KEY: user_id})

    def close(self) -> None:
        """Close the backend."""
        self.backend.close()


def parse_record(raw_text: str) -> ProgressRecord:
    """Strictly parse serialized progress text."""
    try:
        parsed: object = json.loads(raw_text)
    except ValueError as exc:
        raise ProgressImportError(f"Progress data is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProgressImportError("Progress data must be a JSON object mapping topic codes to true/false.")
    record: ProgressRecord = {}
    for code, flag in parsed.items():
        if not isinstance(flag, bool):
            raise ProgressImportError(f"Progress value for '{code}' must be true or false.")
        record[code] = flag
    return record
