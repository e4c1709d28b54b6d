from __future__ import annotations

import http.client
import logging
import os
import re
import socket
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .champion_catalog import Champion, ChampionCatalog
from .image_io import decode_rgba
from .portrait_hash import compute_portrait_hash, hamming_distance
from .roster_config import DEFAULT_CONFIG, RosterConfig
from .roster_types import (
    GridCell,
    RawImage,
    Rect,
    ReferenceImageError,
    RosterDependencyError,
    RosterInputError,
)

logger = logging.getLogger("roster.champion")

DEFAULT_CACHE_DIR = Path(tempfile.gettempdir()) / "roster-scanner" / "champion-cache"
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
DEFAULT_FETCH_WORKERS = 8
_USER_AGENT = "Mozilla/5.0 (roster-scanner)"
_UNSAFE_NAME_PATTERN = re.compile(r"[^a-z0-9]", re.IGNORECASE)

ImageFetcher = Callable[[str], bytes]


def cache_file_name(champion_name: str) -> str:
    return _UNSAFE_NAME_PATTERN.sub("_", champion_name).lower() + "_raw"


def reference_crop_rect(
    width: int, height: int, config: RosterConfig = DEFAULT_CONFIG
) -> tuple[int, int, int, int]:
    return Rect(0, 0, width, height).sub_rect(config.reference_portrait_crop).rounded()


def download_image(url: str, timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS) -> bytes:
    request = Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status = getattr(response, "status", None) or response.getcode()
            if status != 200:
                raise ReferenceImageError(f"image host returned non-200 status: {status}")
            data = response.read()
    except HTTPError as exc:
        raise ReferenceImageError(f"image host returned HTTP error: {exc.code}") from exc
    except URLError as exc:
        raise ReferenceImageError(f"failed to reach image host: {exc.reason}") from exc
    except socket.timeout as exc:
        raise ReferenceImageError("image download timed out") from exc
    except TimeoutError as exc:
        raise ReferenceImageError("image download timed out") from exc
    except (OSError, http.client.HTTPException) as exc:
        raise ReferenceImageError(f"image download failed: {exc!r}") from exc

    if not data:
        raise ReferenceImageError("image host returned an empty body")
    return data


@dataclass(frozen=True)
class ReferenceHash:
    champion: Champion
    hash: str


@dataclass(frozen=True)
class ChampionMatch:
    best_match: str | None
    distance: int | None
    accepted: bool

    @property
    def champion_name(self) -> str | None:
        return self.best_match if self.accepted else None


class ChampionMatcher:
    """Identifies champion portraits by nearest reference hash within a class.

    Owns two read-through caches: reference artwork bytes on disk and the
    per-class reference hashes in memory. Both are write-once per key and every
    recomputation yields the same value, so concurrent population may duplicate
    work but never corrupts an entry; writes are insert-if-absent and no lock is
    held while fetching or hashing.

    Champions whose reference could not be loaded are remembered per class and
    not retried for the lifetime of the matcher.
    """

    def __init__(
        self,
        catalog: ChampionCatalog,
        cache_dir: Path = DEFAULT_CACHE_DIR,
        config: RosterConfig = DEFAULT_CONFIG,
        fetch_image: ImageFetcher | None = None,
        max_workers: int = DEFAULT_FETCH_WORKERS,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self._catalog = catalog
        self._cache_dir = Path(cache_dir)
        self._config = config
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._fetch_image = fetch_image or self._default_fetch
        self._max_workers = max(1, max_workers)
        self._lock = Lock()
        self._class_members: dict[str, list[Champion]] = {}
        self._hashes: dict[str, dict[str, ReferenceHash]] = {}
        self._failed: dict[str, set[str]] = {}

        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("failed to create cache directory %s: %s", self._cache_dir, exc)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def catalog(self) -> ChampionCatalog:
        return self._catalog

    def _default_fetch(self, url: str) -> bytes:
        return download_image(url, timeout_seconds=self._fetch_timeout_seconds)

    def portrait_rect(self, cell: GridCell) -> tuple[int, int, int, int]:
        return cell.bounds.sub_rect(self._config.portrait_ratio).rounded()

    def identify(self, cell: GridCell, image: RawImage) -> ChampionMatch | None:
        """Match the cell's portrait against its class.

        Sets ``cell.champion_name`` when the best distance is within the
        threshold. Returns ``None`` when matching could not run at all (no
        class, crop outside the image).
        """
        if cell.champion_class is None:
            return None

        left, top, width, height = self.portrait_rect(cell)
        if width <= 0 or height <= 0 or not image.contains(left, top, width, height):
            logger.debug("portrait crop outside image: %s", (left, top, width, height))
            return None

        portrait_hash = compute_portrait_hash(
            image, left, top, width, height, grid_size=self._config.hash_grid_size
        )
        candidates = self.get_reference_hashes(cell.champion_class)

        best_match: str | None = None
        min_distance: int | None = None
        for candidate in candidates:
            distance = hamming_distance(portrait_hash, candidate.hash)
            if min_distance is None or distance < min_distance:
                min_distance = distance
                best_match = candidate.champion.name

        accepted = min_distance is not None and min_distance <= self._config.champion_match_threshold
        match = ChampionMatch(best_match=best_match, distance=min_distance, accepted=accepted)
        if match.accepted:
            cell.champion_name = match.best_match

        if cell.diagnostics is not None:
            cell.diagnostics.best_match = best_match
            cell.diagnostics.min_distance = min_distance
            if best_match is not None:
                cell.diagnostics.best_match_image = self.reference_image_bytes(best_match)
        return match

    def get_reference_hashes(self, champion_class: str) -> list[ReferenceHash]:
        with self._lock:
            members = self._class_members.get(champion_class)
        if members is None:
            members = self._catalog.champions_by_class(champion_class)
            with self._lock:
                members = self._class_members.setdefault(champion_class, members)

        with self._lock:
            cached = dict(self._hashes.get(champion_class, {}))
            failed = set(self._failed.get(champion_class, ()))
        missing = [c for c in members if c.name not in cached and c.name not in failed]
        if missing:
            loaded = self._populate(champion_class, missing)
            cached.update(loaded)

        return [cached[c.name] for c in members if c.name in cached]

    def _populate(self, champion_class: str, missing: list[Champion]) -> dict[str, ReferenceHash]:
        workers = min(self._max_workers, len(missing))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(self._try_load_reference, missing))

        loaded: dict[str, ReferenceHash] = {}
        with self._lock:
            partition = self._hashes.setdefault(champion_class, {})
            failures = self._failed.setdefault(champion_class, set())
            for champion, entry in zip(missing, results):
                if entry is None:
                    failures.add(champion.name)
                    continue
                loaded[entry.champion.name] = partition.setdefault(entry.champion.name, entry)
        logger.info(
            "reference hashes populated: class=%s loaded=%d failed=%d",
            champion_class,
            len(loaded),
            len(missing) - len(loaded),
        )
        return loaded

    def _try_load_reference(self, champion: Champion) -> ReferenceHash | None:
        try:
            return self._load_reference(champion)
        except ReferenceImageError as exc:
            logger.warning("failed to load reference image for %s: %s", champion.name, exc)
            return None
        except RosterDependencyError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("unexpected error loading reference image for %s: %r", champion.name, exc)
            return None

    def _load_reference(self, champion: Champion) -> ReferenceHash:
        data = self._read_or_fetch(champion)
        try:
            image = decode_rgba(data)
        except RosterInputError as exc:
            raise ReferenceImageError(f"undecodable reference image: {exc}") from exc

        left, top, width, height = reference_crop_rect(image.width, image.height, self._config)
        if width <= 0 or height <= 0:
            raise ReferenceImageError(f"reference image too small: {image.width}x{image.height}")
        return ReferenceHash(
            champion=champion,
            hash=compute_portrait_hash(
                image, left, top, width, height, grid_size=self._config.hash_grid_size
            ),
        )

    def _read_or_fetch(self, champion: Champion) -> bytes:
        path = self._cache_dir / cache_file_name(champion.name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("unreadable cache file %s, refetching: %s", path, exc)

        if not champion.image_url:
            raise ReferenceImageError("champion has no reference image url")
        data = self._fetch_image(champion.image_url)
        self._write_cache(path, data)
        return data

    def _write_cache(self, path: Path, data: bytes) -> None:
        temp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except OSError as exc:
            logger.warning("failed to persist reference image %s: %s", path, exc)

    def reference_image_bytes(self, champion_name: str) -> bytes | None:
        path = self._cache_dir / cache_file_name(champion_name)
        try:
            return path.read_bytes()
        except OSError:
            return None

