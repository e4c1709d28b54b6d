from __future__ import annotations

from typing import Any

import numpy as np

from .image_io import decode_bgr, encode_png, require_cv2
from .roster_config import DEFAULT_CONFIG, RosterConfig
from .roster_types import CellDims, GridCell, Rect, round_half_up

# BGR
_RED = (0, 0, 255)
_LIME = (0, 255, 0)
_BLUE = (255, 0, 0)
_YELLOW = (0, 255, 255)
_CYAN = (255, 255, 0)
_ORANGE = (0, 165, 255)
_MAGENTA = (255, 0, 255)
_WHITE = (255, 255, 255)
_GREY = (221, 221, 221)
_LAVENDER = (255, 170, 170)

_LABEL_HEIGHT = 70
_THUMB_SIZE = 40


def _draw_rect(cv2: Any, canvas: np.ndarray, rect: Rect, color: tuple[int, int, int], thickness: int) -> None:
    x, y, w, h = rect.rounded()
    cv2.rectangle(canvas, (x, y), (x + w, y + h), color, thickness)


def _clip(canvas: np.ndarray, x: int, y: int, w: int, h: int) -> tuple[int, int, int, int] | None:
    img_h, img_w = canvas.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(img_w, x + w), min(img_h, y + h)
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def _label_lines(cell: GridCell) -> list[str]:
    rank_sig = f"R{cell.rank} S{cell.sig_level or 0}" if cell.rank is not None else ""
    stars = f"{cell.stars}*" if cell.stars else ""
    ascended = "(ASC)" if cell.is_ascended else ""
    extra = cell.diagnostics.extra if cell.diagnostics is not None else {}
    star_ratio = str(extra.get("starWidthRatio") or "")
    hue = f"{extra['classHue']}deg" if extra.get("classHue") is not None else ""
    line2 = " ".join(part for part in (stars, rank_sig, ascended) if part)
    if star_ratio:
        line2 = f"{line2} [{star_ratio}]"
    return [cell.champion_name or "?", line2, hue]


def _draw_label(cv2: Any, canvas: np.ndarray, cell: GridCell) -> None:
    x, y, w, _ = cell.bounds.rounded()
    top = round_half_up(cell.bounds.y + cell.bounds.height / 4)
    box = _clip(canvas, x, top, w, _LABEL_HEIGHT)
    if box is not None:
        x0, y0, x1, y1 = box
        region = canvas[y0:y1, x0:x1]
        canvas[y0:y1, x0:x1] = cv2.addWeighted(region, 0.4, np.zeros_like(region), 0.6, 0)

    styles = ((0.55, _WHITE, 2), (0.45, _GREY, 1), (0.45, _LAVENDER, 1))
    for idx, (text, (scale, color, thickness)) in enumerate(zip(_label_lines(cell), styles)):
        if not text:
            continue
        origin = (x + 5, top + 20 * (idx + 1))
        cv2.putText(canvas, text, origin, cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)


def _draw_thumbnail(cv2: Any, canvas: np.ndarray, cell: GridCell) -> None:
    if cell.diagnostics is None or not cell.diagnostics.best_match_image:
        return
    arr = np.frombuffer(cell.diagnostics.best_match_image, dtype=np.uint8)
    ref = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if ref is None:
        return
    thumb = cv2.resize(ref, (_THUMB_SIZE, _THUMB_SIZE), interpolation=cv2.INTER_AREA)

    x, y, w, _ = cell.bounds.rounded()
    left, top = x + w - _THUMB_SIZE - 5, y + 5
    box = _clip(canvas, left, top, _THUMB_SIZE, _THUMB_SIZE)
    if box is None:
        return
    x0, y0, x1, y1 = box
    canvas[y0:y1, x0:x1] = thumb[y0 - top : y1 - top, x0 - left : x1 - left]


def draw_debug_image(
    image_bytes: bytes,
    grid: list[GridCell],
    cell_dims: CellDims,
    header_min_y: float | None = None,
    config: RosterConfig = DEFAULT_CONFIG,
) -> bytes:
    """Render crop regions and recognized fields over a copy of the screenshot.

    Returns ``image_bytes`` untouched when there is nothing to draw; otherwise
    a PNG.
    """
    has_header = header_min_y is not None and header_min_y > 0
    if not grid and not has_header:
        return image_bytes

    cv2 = require_cv2()
    canvas = decode_bgr(image_bytes).copy()

    if has_header:
        y = round_half_up(header_min_y or 0.0)
        cv2.line(canvas, (0, y), (canvas.shape[1], y), _RED, 4)

    for cell in grid:
        bounds = cell.bounds
        if cell_dims.width > 0 and cell_dims.height > 0:
            bounds = Rect(cell.bounds.x, cell.bounds.y, cell_dims.width, cell_dims.height)

        _draw_rect(cv2, canvas, bounds, _LIME, 4)
        _draw_rect(cv2, canvas, bounds.sub_rect(config.class_icon_ratio), _BLUE, 2)
        _draw_rect(cv2, canvas, bounds.sub_rect(config.portrait_ratio), _YELLOW, 2)
        _draw_rect(cv2, canvas, bounds.sub_rect(config.stars_check_ratio), _CYAN, 2)
        _draw_rect(cv2, canvas, bounds.sub_rect(config.ascension_icon_ratio), _ORANGE, 2)

        if cell.champion_name or cell.champion_class or cell.rank is not None:
            _draw_label(cv2, canvas, cell)
        _draw_thumbnail(cv2, canvas, cell)

        if cell.pi_bounds is not None:
            _draw_rect(cv2, canvas, cell.pi_bounds, _MAGENTA, 2)

    return encode_png(canvas)
