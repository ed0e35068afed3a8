"""Completion percentages derived from a progression and a progress record."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .curriculum import iter_topics
from .models import CompletionSummary, Progression, ProgressRecord, TopicEntry, YearGroup, YearProgress


def _rounded_percent(completed: int, total: int) -> int:
    """Return 100 * completed / total rounded half up, or 0 for no topics."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def _completed_count(topics: Iterable[TopicEntry], record: ProgressRecord) -> int:
    return sum(1 for topic in topics if record.get(topic.code, False))


def percent_for(topics: Sequence[TopicEntry], record: ProgressRecord) -> int:
    """Return the whole-number percentage of topics marked complete."""
    return _rounded_percent(_completed_count(topics, record), len(topics))


def completion_summary(subject_years: Sequence[YearGroup], record: ProgressRecord) -> CompletionSummary:
    """Summarize completion across all years of one subject."""
    total = sum(len(group.topics) for group in subject_years)
    completed = sum(_completed_count(group.topics, record) for group in subject_years)
    return CompletionSummary(
        percent=_rounded_percent(completed, total),
        completed=completed,
        total=total,
        remaining=total - completed,
    )


def year_progress(subject_years: Sequence[YearGroup], record: ProgressRecord) -> list[YearProgress]:
    """Return per-year completion rows in progression order."""
    rows: list[YearProgress] = []
    for group in subject_years:
        completed = _completed_count(group.topics, record)
        rows.append(
            YearProgress(
                year=group.year,
                percent=_rounded_percent(completed, len(group.topics)),
                completed=completed,
                total=len(group.topics),
            )
        )
    return rows


def overall_percent(progression: Progression, record: ProgressRecord) -> int:
    """Return completion across every subject combined."""
    return percent_for(iter_topics(progression), record)
