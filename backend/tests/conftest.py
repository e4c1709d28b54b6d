from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = BACKEND_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roster_scanner.services.roster_types import TextDetection  # noqa: E402


def _box_detection(text: str, left: float, bottom: float, width: float = 60, height: float = 20) -> TextDetection:
    top = bottom - height
    return TextDetection(
        description=text,
        vertices=(
            (left, top),
            (left + width, top),
            (left + width, bottom),
            (left, bottom),
        ),
    )


@pytest.fixture
def make_detection() -> Callable[..., TextDetection]:
    """Detection whose box has its left edge at ``left`` and bottom edge at ``bottom``."""
    return _box_detection


@pytest.fixture
def aggregate() -> TextDetection:
    return _box_detection("full page text", 0, 2000, width=2000, height=2000)
