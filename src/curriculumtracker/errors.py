"""Exception types raised by the tracker core."""

from __future__ import annotations


class CurriculumTrackerError(Exception):
    """Base class for tracker errors."""


class MalformedCurriculumError(CurriculumTrackerError, ValueError):
    """Curriculum document does not have the subject -> year -> topics shape."""


class StoreUnavailableError(CurriculumTrackerError):
    """Persistence medium cannot be opened, read or written."""


class ProgressImportError(CurriculumTrackerError, ValueError):
    """Imported progress text is not a valid progress record."""
