from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture
def raw_curriculum() -> dict[str, Any]:
    """Two subjects with deliberately unordered year labels."""
    return {
        "Math": {
            "Year 10": [{"topic": "Calculus", "code": "M10C"}],
            "Year 9": [{"topic": "Algebra", "code": "M9A"}, {"topic": "Geometry", "code": "M9G"}],
            "Year 7": [{"topic": "Number", "code": "M7N"}],
        },
        "Art": {
            "Year 8": [{"topic": "Drawing", "code": "A8D"}],
        },
    }
