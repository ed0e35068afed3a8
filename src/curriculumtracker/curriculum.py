"""Normalize raw curriculum documents into ordered progressions."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import MalformedCurriculumError
from .models import Progression, TopicEntry, YearGroup

CONTENT_PACKAGE = "curriculumtracker.content"
BUNDLED_CURRICULUM = "syllabus.json"

_DIGITS = re.compile(r"\d+")


def year_ordinal(label: str) -> int:
    """Return the first run of digits in a year label, or 0 when there is none."""
    match = _DIGITS.search(label)
    if match is None:
        return 0
    return int(match.group(0))


def _topic_from_raw(subject: str, year: str, raw: Any) -> TopicEntry:
    """Build a topic entry from one raw `{topic, code}` mapping."""
    if not isinstance(raw, Mapping):
        raise MalformedCurriculumError(f"Topic in '{subject}' / '{year}' must be an object.")
    topic = raw.get("topic")
    code = raw.get("code")
    if not isinstance(topic, str) or not isinstance(code, str):
        raise MalformedCurriculumError(f"Topic in '{subject}' / '{year}' needs string 'topic' and 'code' fields.")
    return TopicEntry(topic=topic, code=code)


def _years_from_raw(subject: str, raw: Any) -> tuple[YearGroup, ...]:
    """Build year groups for one subject, ordered by embedded year number."""
    if not isinstance(raw, Mapping):
        raise MalformedCurriculumError(f"Subject '{subject}' must map year labels to topic lists.")
    groups: list[YearGroup] = []
    # sorted() is stable, so labels with equal ordinals keep document order.
    for year in sorted(raw, key=lambda label: year_ordinal(str(label))):
        entries = raw[year]
        if not isinstance(entries, list | tuple):
            raise MalformedCurriculumError(f"Year '{year}' of subject '{subject}' must be a list of topics.")
        topics = tuple(_topic_from_raw(subject, str(year), entry) for entry in entries)
        groups.append(YearGroup(year=str(year), topics=topics))
    return tuple(groups)


def normalize(raw: Any) -> Progression:
    """Turn a `subject -> year -> [{topic, code}]` document into a read-only progression.

    Subjects keep document order. Topic code uniqueness is not checked here.
    """
    if not isinstance(raw, Mapping):
        raise MalformedCurriculumError("Curriculum document root must be an object.")
    progression: dict[str, tuple[YearGroup, ...]] = {}
    for subject, years in raw.items():
        progression[str(subject)] = _years_from_raw(str(subject), years)
    return MappingProxyType(progression)


def load_curriculum(path: Path | str) -> Progression:
    """Load and normalize a curriculum JSON file."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        raise MalformedCurriculumError(f"Could not read curriculum '{path}': {exc}") from exc
    return normalize(raw)


def load_bundled_curriculum() -> Progression:
    """Load the sample curriculum shipped with the package."""
    entry = resources.files(CONTENT_PACKAGE).joinpath(BUNDLED_CURRICULUM)
    try:
        raw = json.loads(entry.read_text(encoding="utf-8-sig"))
    except ValueError as exc:
        raise MalformedCurriculumError(f"Bundled curriculum is not valid JSON: {exc}") from exc
    return normalize(raw)


def iter_topics(progression: Progression) -> list[TopicEntry]:
    """Return every topic of every subject in progression order."""
    return [topic for groups in progression.values() for group in groups for topic in group.topics]
