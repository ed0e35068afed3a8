"""Cross-user ranking by overall completion."""

from __future__ import annotations

from datetime import datetime

from .calculator import overall_percent
from .models import LeaderboardEntry, Progression
from .progress import ProgressStore
from .users import UserRegistry


def build_leaderboard(progression: Progression, store: ProgressStore, registry: UserRegistry) -> list[LeaderboardEntry]:
    """Rank every known user by completion across all subjects.

    Users are read from one registry snapshot; a record removed mid-scan loads
    as empty. Ties keep registry order, and every user sharing a non-zero top
    percentage is marked as a leader.
    """
    users = list(registry.list_users())
    scored: list[tuple[str, int, datetime | None]] = []
    for user in users:
        record, last_active = store.snapshot(user)
        scored.append((user, overall_percent(progression, record), last_active))
    scored.sort(key=lambda row: row[1], reverse=True)

    top = max((percent for _, percent, _ in scored), default=0)
    return [
        LeaderboardEntry(user=user, percent=percent, last_active=last_active, leader=top > 0 and percent == top)
        for user, percent, last_active in scored
    ]
