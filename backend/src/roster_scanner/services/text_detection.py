from __future__ import annotations

import json
from typing import Any, Protocol

from .image_io import decode_bgr, require_cv2
from .roster_types import (
    RosterDependencyError,
    RosterInputError,
    TextDetection,
)


class TextDetector(Protocol):
    def detect_text(self, image_bytes: bytes) -> list[TextDetection]:
        """Return detections; index 0 is a full-page aggregate."""


def detections_from_payload(payload: Any) -> list[TextDetection]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise RosterInputError("detections payload is not valid JSON") from exc
    if isinstance(payload, dict):
        payload = payload.get("textAnnotations", payload.get("detections"))
    if not isinstance(payload, list):
        raise RosterInputError("detections payload must be a list")
    return [TextDetection.from_payload(item) for item in payload]


class StaticTextDetector:
    """Replays detections produced earlier by the provider."""

    def __init__(self, detections: list[TextDetection]) -> None:
        self._detections = list(detections)

    def detect_text(self, image_bytes: bytes) -> list[TextDetection]:
        return list(self._detections)


def _box(left: float, top: float, width: float, height: float) -> tuple[tuple[float, float], ...]:
    return (
        (left, top),
        (left + width, top),
        (left + width, top + height),
        (left, top + height),
    )


class TesseractTextDetector:
    """Word-level detections from Tesseract, shaped like the cloud provider output."""

    def __init__(self, lang: str = "eng", config: str = "--oem 3 --psm 11") -> None:
        self._lang = lang
        self._config = config

    def detect_text(self, image_bytes: bytes) -> list[TextDetection]:
        try:
            import pytesseract  # type: ignore
            from pytesseract import TesseractNotFoundError  # type: ignore
        except Exception as exc:  # noqa: BLE001
            raise RosterDependencyError("pytesseract is required") from exc

        cv2 = require_cv2()
        image = decode_bgr(image_bytes)
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        try:
            data = pytesseract.image_to_data(
                gray,
                lang=self._lang,
                config=self._config,
                output_type=pytesseract.Output.DICT,
            )
        except TesseractNotFoundError as exc:
            raise RosterDependencyError(
                "pytesseract failed: tesseract is not installed or not in PATH"
            ) from exc

        words: list[TextDetection] = []
        texts = data.get("text", [])
        for idx, raw in enumerate(texts):
            text = str(raw or "").strip()
            if not text:
                continue
            words.append(
                TextDetection(
                    description=text,
                    vertices=_box(
                        float(data["left"][idx]),
                        float(data["top"][idx]),
                        float(data["width"][idx]),
                        float(data["height"][idx]),
                    ),
                )
            )

        if not words:
            return []

        h, w = gray.shape[:2]
        aggregate = TextDetection(
            description="\n".join(d.description for d in words),
            vertices=_box(0.0, 0.0, float(w), float(h)),
        )
        return [aggregate, *words]
