from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from .champion_catalog import ManifestChampionCatalog
from .image_io import decode_rgba
from .roster_champion import (
    DEFAULT_CACHE_DIR,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_FETCH_WORKERS,
    ChampionMatcher,
)
from .roster_config import DEFAULT_CONFIG, RosterConfig, env_float, env_int
from .roster_debug import draw_debug_image
from .roster_layout import estimate_grid
from .roster_types import (
    CellDiagnostics,
    GridCell,
    RawImage,
    RosterInputError,
    RosterScanError,
    RosterScanResult,
    TextDetection,
)
from .text_detection import TesseractTextDetector, TextDetector

logger = logging.getLogger("roster.service")

DEFAULT_BATCH_WORKERS = 4
DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[3] / "static" / "champions.json"


class CellFeatureClassifier(Protocol):
    def classify(self, image: RawImage, cell: GridCell) -> None:
        """Fill ``champion_class``, ``stars`` and ``is_ascended`` in place."""


@dataclass
class BatchOutcome:
    result: RosterScanResult | None = None
    error: RosterScanError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def filter_by_prestige(
    grid: list[GridCell],
    min_prestige: Mapping[str, int],
    tolerance: float = DEFAULT_CONFIG.prestige_tolerance,
) -> list[GridCell]:
    """Drop cells whose power rating is implausibly low for their stars and rank."""
    kept: list[GridCell] = []
    for cell in grid:
        if cell.stars and cell.rank and cell.power_rating:
            floor = min_prestige.get(f"{cell.stars}-{cell.rank}")
            if floor and cell.power_rating < floor * tolerance:
                logger.warning(
                    "discarding implausible cell stars=%s rank=%s pi=%s min_prestige=%s",
                    cell.stars,
                    cell.rank,
                    cell.power_rating,
                    floor,
                )
                continue
        kept.append(cell)
    if len(kept) < len(grid):
        logger.info("filtered invalid roster entries: removed=%d", len(grid) - len(kept))
    return kept


class RosterImageService:
    def __init__(
        self,
        text_detector: TextDetector,
        matcher: ChampionMatcher,
        classifier: CellFeatureClassifier | None = None,
        config: RosterConfig = DEFAULT_CONFIG,
        min_prestige: Mapping[str, int] | None = None,
        batch_workers: int = DEFAULT_BATCH_WORKERS,
    ) -> None:
        self._text_detector = text_detector
        self._matcher = matcher
        self._classifier = classifier
        self._config = config
        self._min_prestige = dict(min_prestige or {})
        self._batch_workers = max(1, batch_workers)

    @property
    def matcher(self) -> ChampionMatcher:
        return self._matcher

    def process(
        self,
        image_bytes: bytes,
        debug_mode: bool = False,
        detections: list[TextDetection] | None = None,
    ) -> RosterScanResult:
        """Scan one screenshot.

        ``detections`` skips the text detector when the caller already holds the
        provider output. Raises ``GridAnchorError`` when no grid can be anchored.
        """
        t0 = time.perf_counter()

        if detections is None:
            detections = self._text_detector.detect_text(image_bytes)
        t1 = time.perf_counter()
        if not detections:
            raise RosterInputError("no text detected in image")

        image = decode_rgba(image_bytes)
        t2 = time.perf_counter()

        layout = estimate_grid(detections, image.width, self._config)
        grid = layout.grid
        t3 = time.perf_counter()

        if debug_mode:
            for cell in grid:
                cell.diagnostics = CellDiagnostics()

        if self._classifier is not None:
            for cell in grid:
                self._classifier.classify(image, cell)
        t4 = time.perf_counter()

        classes = sorted({cell.champion_class for cell in grid if cell.champion_class})
        for champion_class in classes:
            self._matcher.get_reference_hashes(champion_class)
        t5 = time.perf_counter()

        for cell in grid:
            self._matcher.identify(cell, image)
        t6 = time.perf_counter()

        if self._min_prestige:
            grid = filter_by_prestige(grid, self._min_prestige, self._config.prestige_tolerance)

        debug_image: bytes | None = None
        if debug_mode:
            debug_image = draw_debug_image(
                image_bytes,
                grid,
                layout.cell_dims,
                layout.header_min_y,
                self._config,
            )
        t7 = time.perf_counter()

        logger.debug(
            "roster timings ms ocr=%.0f decode=%.0f layout=%.0f features=%.0f "
            "fetch=%.0f matching=%.0f total=%.0f",
            (t1 - t0) * 1000.0,
            (t2 - t1) * 1000.0,
            (t3 - t2) * 1000.0,
            (t4 - t3) * 1000.0,
            (t5 - t4) * 1000.0,
            (t6 - t5) * 1000.0,
            (t7 - t0) * 1000.0,
        )
        return RosterScanResult(grid=grid, debug_image=debug_image)

    def _process_one(self, image_bytes: bytes, debug_mode: bool) -> BatchOutcome:
        try:
            return BatchOutcome(result=self.process(image_bytes, debug_mode=debug_mode))
        except RosterScanError as exc:
            logger.warning("roster image failed: %s", exc)
            return BatchOutcome(error=exc)

    def process_batch(self, images: list[bytes], debug_mode: bool = False) -> list[BatchOutcome]:
        """Process independent screenshots in parallel; output order matches input."""
        if not images:
            return []
        workers = min(self._batch_workers, len(images))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(lambda data: self._process_one(data, debug_mode), images))


def create_roster_service(text_detector: TextDetector | None = None) -> RosterImageService:
    config = RosterConfig.from_env()
    catalog_path = Path(os.getenv("ROSTER_CHAMPIONS_PATH", "") or DEFAULT_CATALOG_PATH)
    cache_dir = Path(os.getenv("ROSTER_CACHE_DIR", "") or DEFAULT_CACHE_DIR)

    matcher = ChampionMatcher(
        catalog=ManifestChampionCatalog(catalog_path),
        cache_dir=cache_dir,
        config=config,
        max_workers=env_int("ROSTER_FETCH_WORKERS", DEFAULT_FETCH_WORKERS),
        fetch_timeout_seconds=env_float(
            "ROSTER_FETCH_TIMEOUT_SECONDS", DEFAULT_FETCH_TIMEOUT_SECONDS
        ),
    )
    detector = text_detector or TesseractTextDetector(lang=os.getenv("TESSERACT_LANG", "eng"))
    return RosterImageService(
        text_detector=detector,
        matcher=matcher,
        config=config,
        batch_workers=env_int("ROSTER_BATCH_WORKERS", DEFAULT_BATCH_WORKERS),
    )
