"""curriculumtracker package."""

from __future__ import annotations

import re
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]


def _version_from_pyproject() -> str | None:
    """Read the project version from a nearby pyproject.toml when running from source."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.exists():
            continue
        in_project = False
        for line in pyproject.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                in_project = stripped == "[project]"
            elif in_project:
                match = re.match(r'^version\s*=\s*"([^"]+)"\s*$', stripped)
                if match:
                    return match.group(1)
        return None
    return None


__version__ = _version_from_pyproject()
if __version__ is None:
    try:
        __version__ = version("curriculumtracker")
    except PackageNotFoundError:
        __version__ = "0+unknown"
