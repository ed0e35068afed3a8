"""Core domain models for curriculum progress tracking."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

ProgressRecord = dict[str, bool]


@dataclass(frozen=True)
class TopicEntry:
    """One curriculum topic and its stable code."""

    topic: str
    code: str


@dataclass(frozen=True)
class YearGroup:
    """Topics taught in one year, in source order."""

    year: str
    topics: tuple[TopicEntry, ...]


Progression = Mapping[str, tuple[YearGroup, ...]]


@dataclass(frozen=True)
class CompletionSummary:
    """Completion totals across every year of one subject."""

    percent: int
    completed: int
    total: int
    remaining: int


@dataclass(frozen=True)
class YearProgress:
    """Completion for one year group."""

    year: str
    percent: int
    completed: int
    total: int


@dataclass(frozen=True)
class LeaderboardEntry:
    """One ranked leaderboard row."""

    user: str
    percent: int
    last_active: datetime | None
    leader: bool
