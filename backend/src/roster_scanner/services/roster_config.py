from __future__ import annotations

import os
from dataclasses import dataclass, field, replace


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_keywords(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    keywords = tuple(part.strip().upper() for part in raw.split(",") if part.strip())
    return keywords or default


@dataclass(frozen=True)
class CropRatio:
    """Sub-region of a rectangle, expressed as fractions of its width/height."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class RosterConfig:
    min_pi_value: int = 300

    # Grid structure, relative to the average column distance.
    cell_width_ratio: float = 0.93
    cell_height_ratio: float = 1.16

    # Power-rating anchor offsets inside a card.
    pi_offset_x_ratio: float = 0.20
    pi_offset_y_ratio: float = 0.065

    column_tolerance_px: float = 50.0
    fallback_columns: int = 7

    # Empirical; needs recalibration against fresh screenshots.
    leading_glyph_shift_ratio: float = 1.15

    rank_text_x_ratio: float = 0.6
    rank_text_top_ratio: float = 0.2

    header_keywords: tuple[str, ...] = ("MASTERIES", "CRAFTING")

    # Crop regions, relative to cell width/height.
    class_icon_ratio: CropRatio = field(default_factory=lambda: CropRatio(0.04, 0.82, 0.16, 0.14))
    ascension_icon_ratio: CropRatio = field(default_factory=lambda: CropRatio(0.78, 0.84, 0.16, 0.10))
    portrait_ratio: CropRatio = field(default_factory=lambda: CropRatio(0.28, 0.18, 0.44, 0.40))
    stars_check_ratio: CropRatio = field(default_factory=lambda: CropRatio(0.02, 0.64, 0.96, 0.05))

    # Crop applied to the reference artwork (p_128), framed differently from the game.
    reference_portrait_crop: CropRatio = field(
        default_factory=lambda: CropRatio(0.265, 0.15, 0.47, 0.65)
    )

    hash_grid_size: int = 16
    champion_match_threshold: int = 90

    prestige_tolerance: float = 0.9

    @classmethod
    def from_env(cls) -> RosterConfig:
        base = cls()
        return replace(
            base,
            min_pi_value=env_int("ROSTER_MIN_PI_VALUE", base.min_pi_value),
            champion_match_threshold=env_int(
                "ROSTER_MATCH_THRESHOLD", base.champion_match_threshold
            ),
            header_keywords=_env_keywords("ROSTER_HEADER_KEYWORDS", base.header_keywords),
        )


DEFAULT_CONFIG = RosterConfig()
