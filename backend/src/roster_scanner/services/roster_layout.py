from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .roster_config import DEFAULT_CONFIG, RosterConfig
from .roster_types import (
    CellDims,
    GridAnchorError,
    GridCell,
    GridLayout,
    Rect,
    TextDetection,
)

logger = logging.getLogger("roster.layout")

_NON_DIGIT_PATTERN = re.compile(r"[^\d]")
_FIRST_DIGIT_PATTERN = re.compile(r"\d")
_RANK_PATTERN = re.compile(r"Rank\s*(\d+)", re.IGNORECASE)
_SIG_PATTERN = re.compile(r"Sig[.\s]*(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class _Anchor:
    x: float
    y: float
    detection: TextDetection


def _parse_number(text: str) -> int:
    digits = _NON_DIGIT_PATTERN.sub("", text)
    return int(digits) if digits else 0


def _find_anchor_candidates(
    detections: list[TextDetection], min_pi_value: int
) -> list[TextDetection]:
    return [d for d in detections if _parse_number(d.description) > min_pi_value]


def _find_header_min_y(detections: list[TextDetection], keywords: tuple[str, ...]) -> float:
    header_min_y = 0.0
    for detection in detections:
        text = detection.description.upper()
        if not text or not any(kw in text for kw in keywords):
            continue
        bottom = max(detection.vertices[2][1], detection.vertices[3][1])
        header_min_y = max(header_min_y, bottom)
    return header_min_y


def _anchor_position(detection: TextDetection, shift_ratio: float) -> _Anchor:
    x = detection.left
    match = _FIRST_DIGIT_PATTERN.search(detection.description)
    # An icon glyph merged in front of the number pushes the box left.
    if match is not None and match.start() > 0:
        x += detection.height * shift_ratio
    return _Anchor(x=x, y=detection.bottom, detection=detection)


def _unique_columns(xs: list[float], tolerance: float) -> list[float]:
    columns: list[float] = []
    for x in sorted(xs):
        if not columns or x > columns[-1] + tolerance:
            columns.append(x)
    return columns


def estimate_column_distance(
    xs: list[float], image_width: float, config: RosterConfig = DEFAULT_CONFIG
) -> float:
    columns = _unique_columns(xs, config.column_tolerance_px)
    if len(columns) > 1:
        return (columns[-1] - columns[0]) / (len(columns) - 1)
    return image_width / config.fallback_columns


def parse_rank_and_sig(text: str) -> tuple[int | None, int | None]:
    rank_match = _RANK_PATTERN.search(text)
    sig_match = _SIG_PATTERN.search(text)
    rank = int(rank_match.group(1)) if rank_match else None
    sig_level = int(sig_match.group(1)) if sig_match else None
    return rank, sig_level


def _nearby_text(
    detections: list[TextDetection],
    anchor: _Anchor,
    cell_top: float,
    dims: CellDims,
    config: RosterConfig,
) -> str:
    max_dx = dims.width * config.rank_text_x_ratio
    min_bottom = cell_top + dims.height * config.rank_text_top_ratio
    parts: list[str] = []
    for detection in detections:
        if not detection.description:
            continue
        aligned = abs(detection.center_x - anchor.x) < max_dx
        above = min_bottom < detection.bottom < anchor.y
        if aligned and above:
            parts.append(detection.description)
    return " ".join(parts)


def _reading_order(cells: list[GridCell], cell_height: float) -> list[GridCell]:
    rows: list[list[GridCell]] = []
    row_y = 0.0
    for cell in sorted(cells, key=lambda c: c.bounds.y):
        if rows and abs(cell.bounds.y - row_y) < cell_height / 2:
            rows[-1].append(cell)
            continue
        rows.append([cell])
        row_y = cell.bounds.y

    ordered: list[GridCell] = []
    for row in rows:
        ordered.extend(sorted(row, key=lambda c: c.bounds.x))
    return ordered


def cell_origin(
    anchor_x: float, anchor_y: float, avg_col_dist: float, dims: CellDims, config: RosterConfig
) -> tuple[float, float]:
    cell_x = anchor_x - avg_col_dist * config.pi_offset_x_ratio
    cell_y = anchor_y - dims.height + dims.height * config.pi_offset_y_ratio
    return cell_x, cell_y


def anchor_from_cell(
    bounds: Rect, avg_col_dist: float, config: RosterConfig = DEFAULT_CONFIG
) -> tuple[float, float]:
    """Inverse of ``cell_origin``: where the power rating sits inside a cell."""
    anchor_x = bounds.x + avg_col_dist * config.pi_offset_x_ratio
    anchor_y = bounds.y + bounds.height - bounds.height * config.pi_offset_y_ratio
    return anchor_x, anchor_y


def estimate_grid(
    detections: list[TextDetection],
    image_width: float,
    config: RosterConfig = DEFAULT_CONFIG,
) -> GridLayout:
    """Rebuild the roster grid from OCR detections anchored on power ratings.

    ``detections[0]`` is the provider's full-page aggregate and is ignored.
    Raises ``GridAnchorError`` when no power rating qualifies as an anchor.
    """
    texts = detections[1:]

    candidates = _find_anchor_candidates(texts, config.min_pi_value)
    logger.info("power rating candidates found: %d", len(candidates))
    if not candidates:
        raise GridAnchorError("grid could not be anchored: no power ratings found")

    header_min_y = _find_header_min_y(texts, config.header_keywords)
    if header_min_y > 0:
        logger.info("header line at y=%.1f, ignoring content above", header_min_y)

    anchors = [_anchor_position(d, config.leading_glyph_shift_ratio) for d in candidates]
    avg_col_dist = estimate_column_distance([a.x for a in anchors], image_width, config)
    dims = CellDims(
        width=avg_col_dist * config.cell_width_ratio,
        height=avg_col_dist * config.cell_height_ratio,
    )

    cells: list[GridCell] = []
    for anchor in anchors:
        cell_x, cell_y = cell_origin(anchor.x, anchor.y, avg_col_dist, dims, config)
        if cell_y < header_min_y:
            continue

        combined = _nearby_text(texts, anchor, cell_y, dims, config)
        rank, sig_level = parse_rank_and_sig(combined)

        pi_text = anchor.detection.description
        digits = _NON_DIGIT_PATTERN.sub("", pi_text)
        cells.append(
            GridCell(
                bounds=Rect(cell_x, cell_y, dims.width, dims.height),
                pi_bounds=anchor.detection.bounds(),
                power_rating=int(digits) if digits else None,
                rank=rank,
                sig_level=sig_level,
            )
        )

    grid = _reading_order(cells, dims.height)
    logger.info(
        "grid estimated: cells=%d avg_col_dist=%.1f cell=%.1fx%.1f",
        len(grid),
        avg_col_dist,
        dims.width,
        dims.height,
    )
    return GridLayout(
        grid=grid,
        avg_col_dist=avg_col_dist,
        cell_dims=dims,
        header_min_y=header_min_y,
    )
