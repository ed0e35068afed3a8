"""Application service for users, topic toggles, transfers and the leaderboard."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from .calculator import completion_summary, year_progress
from .curriculum import iter_topics, load_bundled_curriculum
from .errors import ProgressImportError, StoreUnavailableError
from .leaderboard import build_leaderboard
from .models import CompletionSummary, LeaderboardEntry, Progression, ProgressRecord, YearProgress
from .progress import ProgressStore, progress_key
from .storage import KeyValueBackend, MemoryKeyValueStore, SqliteKeyValueStore
from .users import UserRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProgressTransferSummary:
    """Summary emitted by progress export/import operations."""

    user: str
    path: str
    topics: int
    completed: int


class TrackerService:
    """Coordinates the progression, the progress store and the user registry.

    When the database cannot be used the service keeps working on an
    in-memory backend; progress then lasts only for the current session.
    """

    def __init__(self, db_path: Path | str, progression: Progression | None = None) -> None:
        """Load the curriculum and open progress storage."""
        self.progression = progression if progression is not None else load_bundled_curriculum()
        self._codes = {topic.code for topic in iter_topics(self.progression)}
        backend: KeyValueBackend
        try:
            backend = SqliteKeyValueStore(db_path)
            self.persistent = True
        except StoreUnavailableError as exc:
            logger.warning("Progress storage unavailable, continuing without saving: %s", exc)
            backend = MemoryKeyValueStore()
            self.persistent = False
        self.store = ProgressStore(backend)
        self.registry = UserRegistry(self.store)
        self._last_user = "guest"
        self._last_record: ProgressRecord = {}
        self._last_user = self._guarded(lambda: self.registry.get_active_user())
        self._last_record = self._guarded(lambda: self.store.load(self._last_user))

    def _guarded(self, operation: Callable[[], T]) -> T:
        """Run a store operation, moving to memory storage if the medium fails."""
        try:
            return operation()
        except StoreUnavailableError as exc:
            if not self.persistent:
                raise
            logger.warning("Progress storage failed, switching to in-memory session: %s", exc)
            self._fall_back_to_memory()
            return operation()

    def _fall_back_to_memory(self) -> None:
        """Replace the backend with memory storage seeded with the last known state."""
        try:
            self.store.close()
        except Exception:  # noqa: BLE001
            logger.debug("Ignoring error while closing failed backend", exc_info=True)
        backend = MemoryKeyValueStore()
        self.store = ProgressStore(backend)
        self.registry = UserRegistry(self.store)
        self.persistent = False
        self.store.set_pointer(self._last_user)
        if self._last_record:
            self.store.save(self._last_user, self._last_record)

    @property
    def active_user(self) -> str:
        """Return the currently selected user."""
        user = self._guarded(lambda: self.registry.get_active_user())
        self._last_user = user
        return user

    def list_users(self) -> list[str]:
        """Return known users, guest first."""
        return self._guarded(lambda: self.registry.list_users())

    def switch_user(self, user_id: str) -> str:
        """Make another user active and return the normalized name."""
        name = user_id.strip()
        self._guarded(lambda: self.registry.set_active_user(name))
        self._last_user = name
        self._last_record = self._guarded(lambda: self.store.load(name))
        return name

    def current_record(self) -> ProgressRecord:
        """Return the active user's progress record."""
        user = self.active_user
        record = self._guarded(lambda: self.store.load(user))
        self._last_record = record
        return record

    def toggle_topic(self, code: str) -> bool:
        """Flip one topic for the active user and return its new state."""
        if code not in self._codes:
            raise KeyError(code)
        user = self.active_user
        record = self._guarded(lambda: self.store.toggle(user, code))
        self._last_record = record
        return record[code]

    def reset_progress(self) -> None:
        """Erase the active user's progress and timestamp."""
        user = self.active_user
        self._guarded(lambda: self.store.clear(user))
        self._last_record = {}
        logger.info("Reset progress for %r", user)

    def subjects(self) -> list[str]:
        """Return subjects in curriculum order."""
        return list(self.progression)

    def subject_summary(self, subject: str) -> CompletionSummary:
        """Return completion totals for one subject."""
        return completion_summary(self.progression[subject], self.current_record())

    def subject_years(self, subject: str) -> list[YearProgress]:
        """Return per-year completion for one subject."""
        return year_progress(self.progression[subject], self.current_record())

    def leaderboard(self) -> list[LeaderboardEntry]:
        """Return all users ranked by completion across every subject."""
        return self._guarded(lambda: build_leaderboard(self.progression, self.store, self.registry))

    def has_saved_progress(self, user_id: str) -> bool:
        """Return whether a user has a stored record."""
        return self._guarded(lambda: self.store.backend.get(progress_key(user_id)) is not None)

    def export_progress(self, export_path: Path | str) -> ProgressTransferSummary:
        """Write the active user's record to a JSON file."""
        user = self.active_user
        text = self._guarded(lambda: self.store.export_record(user))
        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
        record = self.current_record()
        logger.info("Exported progress for %r to %s", user, path)
        return ProgressTransferSummary(
            user=user,
            path=str(path),
            topics=len(record),
            completed=sum(1 for flag in record.values() if flag),
        )

    def import_progress(self, import_path: Path | str) -> ProgressTransferSummary:
        """Replace the active user's record with one read from a JSON file."""
        path = Path(import_path)
        try:
            text = path.read_text(encoding="utf-8-sig")
        except OSError as exc:
            raise ProgressImportError(f"Could not read '{path}': {exc}") from exc
        user = self.active_user
        record = self._guarded(lambda: self.store.import_record(user, text))
        self._last_record = record
        logger.info("Imported %d progress entries for %r from %s", len(record), user, path)
        return ProgressTransferSummary(
            user=user,
            path=str(path),
            topics=len(record),
            completed=sum(1 for flag in record.values() if flag),
        )

    def close(self) -> None:
        """Close resources."""
        self.store.close()
