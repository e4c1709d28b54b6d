from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .roster_config import CropRatio


class RosterScanError(Exception):
    """Base exception for the roster scan pipeline."""


class RosterInputError(RosterScanError):
    """Raised when the image or detection payload is unusable."""


class GridAnchorError(RosterScanError):
    """Raised when no power rating can anchor the roster grid."""


class RosterDependencyError(RosterScanError):
    """Raised when a required imaging/OCR dependency is missing."""


class ReferenceImageError(RosterScanError):
    """Raised when a champion's reference artwork cannot be fetched or decoded."""


class ChampionCatalogError(RosterScanError):
    """Raised when the champion catalog cannot be loaded."""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def sub_rect(self, ratio: CropRatio) -> Rect:
        return Rect(
            x=self.x + self.width * ratio.x,
            y=self.y + self.height * ratio.y,
            width=self.width * ratio.width,
            height=self.height * ratio.height,
        )

    def rounded(self) -> tuple[int, int, int, int]:
        return (
            round_half_up(self.x),
            round_half_up(self.y),
            round_half_up(self.width),
            round_half_up(self.height),
        )

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class TextDetection:
    description: str
    vertices: tuple[tuple[float, float], ...]

    @property
    def left(self) -> float:
        return self.vertices[0][0]

    @property
    def top(self) -> float:
        return self.vertices[0][1]

    @property
    def bottom(self) -> float:
        return self.vertices[2][1]

    @property
    def height(self) -> float:
        return self.vertices[2][1] - self.vertices[0][1]

    @property
    def width(self) -> float:
        return self.vertices[2][0] - self.vertices[0][0]

    @property
    def center_x(self) -> float:
        return (self.vertices[0][0] + self.vertices[2][0]) / 2

    def bounds(self) -> Rect:
        return Rect(self.left, self.top, self.width, self.height)

    @classmethod
    def from_payload(cls, raw: object) -> TextDetection:
        """Parse one provider entry: ``{description, boundingPoly: {vertices}}``.

        The provider omits zero coordinates, so missing ``x``/``y`` keys read as 0.
        """
        if not isinstance(raw, dict):
            raise RosterInputError("text detection is not an object")
        poly = raw.get("boundingPoly")
        vertices_raw = poly.get("vertices") if isinstance(poly, dict) else None
        if not isinstance(vertices_raw, list) or len(vertices_raw) < 4:
            raise RosterInputError("text detection needs 4 bounding vertices")

        vertices: list[tuple[float, float]] = []
        for vertex in vertices_raw[:4]:
            if not isinstance(vertex, dict):
                raise RosterInputError("bounding vertex is not an object")
            try:
                vertices.append((float(vertex.get("x", 0) or 0), float(vertex.get("y", 0) or 0)))
            except (TypeError, ValueError) as exc:
                raise RosterInputError(f"invalid bounding vertex: {vertex}") from exc

        return cls(description=str(raw.get("description") or ""), vertices=tuple(vertices))

    def to_payload(self) -> dict[str, object]:
        return {
            "description": self.description,
            "boundingPoly": {"vertices": [{"x": x, "y": y} for x, y in self.vertices]},
        }


@dataclass
class CellDiagnostics:
    """Tuning scratch space; only attached to cells in debug mode."""

    best_match: str | None = None
    min_distance: int | None = None
    best_match_image: bytes | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = dict(self.extra)
        if self.best_match is not None or self.min_distance is not None:
            out["championMatch"] = {
                "bestMatch": self.best_match,
                "minDistance": self.min_distance,
            }
        return out


@dataclass
class GridCell:
    bounds: Rect
    pi_bounds: Rect | None = None
    power_rating: int | None = None
    rank: int | None = None
    sig_level: int | None = None
    stars: int | None = None
    is_ascended: bool | None = None
    champion_class: str | None = None
    champion_name: str | None = None
    diagnostics: CellDiagnostics | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"bounds": self.bounds.to_dict()}
        if self.pi_bounds is not None:
            out["piBounds"] = self.pi_bounds.to_dict()
        optional = (
            ("powerRating", self.power_rating),
            ("rank", self.rank),
            ("sigLevel", self.sig_level),
            ("stars", self.stars),
            ("isAscended", self.is_ascended),
            ("class", self.champion_class),
            ("championName", self.champion_name),
        )
        for key, value in optional:
            if value is not None:
                out[key] = value
        if self.diagnostics is not None:
            out["debugInfo"] = self.diagnostics.to_dict()
        return out


@dataclass(frozen=True)
class CellDims:
    width: float
    height: float


@dataclass
class GridLayout:
    grid: list[GridCell]
    avg_col_dist: float
    cell_dims: CellDims
    header_min_y: float


@dataclass(frozen=True)
class RawImage:
    """Decoded RGBA pixels, row-major, 4 bytes per pixel."""

    data: bytes
    width: int
    height: int

    def pixels(self) -> np.ndarray:
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)

    def contains(self, left: int, top: int, width: int, height: int) -> bool:
        return (
            left >= 0
            and top >= 0
            and left + width <= self.width
            and top + height <= self.height
        )


@dataclass
class RosterScanResult:
    grid: list[GridCell]
    debug_image: bytes | None = None

    def to_dict(self) -> dict[str, object]:
        return {"grid": [cell.to_dict() for cell in self.grid]}
