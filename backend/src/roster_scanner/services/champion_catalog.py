from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

from .roster_types import ChampionCatalogError

logger = logging.getLogger("roster.catalog")

CHAMPION_CLASSES = ("COSMIC", "TECH", "MUTANT", "SKILL", "SCIENCE", "MYSTIC", "SUPERIOR")


def normalize_class(value: object) -> str | None:
    text = str(value or "").strip().upper()
    if text in CHAMPION_CLASSES:
        return text
    return None


@dataclass(frozen=True)
class Champion:
    name: str
    champion_class: str
    image_url: str | None


def _pick_image_url(images: object) -> str | None:
    if not isinstance(images, dict):
        return None
    for key in ("p_128", "full_primary"):
        url = images.get(key)
        if isinstance(url, str) and url.strip():
            return url.strip()
    return None


def _normalize_item(raw: object) -> Champion | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    champion_class = normalize_class(raw.get("class"))
    if champion_class is None:
        return None
    return Champion(
        name=name.strip(),
        champion_class=champion_class,
        image_url=_pick_image_url(raw.get("images")),
    )


class ChampionCatalog:
    """Champions grouped by class."""

    def __init__(self, champions: Iterable[Champion]) -> None:
        self._by_class: dict[str, list[Champion]] = {}
        for champion in champions:
            self._by_class.setdefault(champion.champion_class, []).append(champion)

    def champions_by_class(self, champion_class: str) -> list[Champion]:
        return list(self._by_class.get(champion_class, []))

    def classes(self) -> list[str]:
        return sorted(self._by_class)

    @classmethod
    def from_payload(cls, payload: Any) -> ChampionCatalog:
        items = payload.get("champions") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise ChampionCatalogError("catalog payload must hold a 'champions' list")
        champions = [c for c in (_normalize_item(raw) for raw in items) if c is not None]
        skipped = len(items) - len(champions)
        if skipped:
            logger.warning("skipped %d invalid catalog entries", skipped)
        return cls(champions)


class ManifestChampionCatalog(ChampionCatalog):
    """Catalog backed by a JSON manifest, reloaded when the file's mtime changes."""

    def __init__(self, path: Path) -> None:
        super().__init__([])
        self._path = path
        self._lock = Lock()
        self._mtime: float | None = None

    def _refresh(self) -> None:
        mtime = self._path.stat().st_mtime if self._path.exists() else -1.0
        with self._lock:
            if self._mtime == mtime:
                return

        if mtime < 0:
            raise ChampionCatalogError(f"champion catalog not found: {self._path}")
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ChampionCatalogError(f"failed to read champion catalog: {exc}") from exc

        loaded = ChampionCatalog.from_payload(payload)
        with self._lock:
            self._by_class = loaded._by_class
            self._mtime = mtime
        logger.info("champion catalog loaded: %s classes=%d", self._path, len(loaded.classes()))

    def champions_by_class(self, champion_class: str) -> list[Champion]:
        self._refresh()
        return super().champions_by_class(champion_class)

    def classes(self) -> list[str]:
        self._refresh()
        return super().classes()
