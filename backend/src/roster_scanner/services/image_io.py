from __future__ import annotations

from typing import Any

import numpy as np

from .roster_types import RawImage, RosterDependencyError, RosterInputError


def require_cv2() -> Any:
    try:
        import cv2  # type: ignore
    except Exception as exc:  # noqa: BLE001
        raise RosterDependencyError("opencv-python-headless is required") from exc
    return cv2


def decode_bgr(image_bytes: bytes) -> np.ndarray:
    if not image_bytes:
        raise RosterInputError("empty image bytes")
    cv2 = require_cv2()
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if image is None:
        raise RosterInputError("failed to decode image bytes")
    return image


def decode_rgba(image_bytes: bytes) -> RawImage:
    if not image_bytes:
        raise RosterInputError("empty image bytes")
    cv2 = require_cv2()
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise RosterInputError("failed to decode image bytes")

    if image.dtype != np.uint8:
        # 16-bit PNGs
        image = (image / 257).astype(np.uint8)
    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)

    h, w = rgba.shape[:2]
    return RawImage(data=np.ascontiguousarray(rgba).tobytes(), width=int(w), height=int(h))


def encode_png(image: np.ndarray) -> bytes:
    cv2 = require_cv2()
    ok, encoded = cv2.imencode(".png", image)
    if not ok:
        raise RosterInputError("failed to encode image")
    return encoded.tobytes()
