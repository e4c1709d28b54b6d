from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from roster_scanner.services.champion_catalog import (  # type: ignore[import-not-found]
    ChampionCatalog,
    ManifestChampionCatalog,
    normalize_class,
)
from roster_scanner.services.roster_types import ChampionCatalogError  # type: ignore[import-not-found]


def _payload() -> dict:
    return {
        "champions": [
            {"name": "Spider-Man", "class": "science", "images": {"p_128": "https://img/spidey.png"}},
            {"name": "Hulk", "class": "SCIENCE", "images": {"full_primary": "https://img/hulk_full.png"}},
            {"name": "Doctor Strange", "class": "Mystic", "images": {}},
            {"name": "", "class": "TECH"},
            {"name": "Nobody", "class": "UNKNOWN"},
            "garbage",
        ]
    }


def test_from_payload_groups_by_class_and_skips_invalid(caplog: pytest.LogCaptureFixture) -> None:
    catalog = ChampionCatalog.from_payload(_payload())

    assert catalog.classes() == ["MYSTIC", "SCIENCE"]
    assert [c.name for c in catalog.champions_by_class("SCIENCE")] == ["Spider-Man", "Hulk"]
    assert catalog.champions_by_class("COSMIC") == []
    assert "skipped 3 invalid catalog entries" in caplog.text


def test_p128_image_is_preferred_over_full_art() -> None:
    catalog = ChampionCatalog.from_payload(_payload())
    by_name = {c.name: c for c in catalog.champions_by_class("SCIENCE")}

    assert by_name["Spider-Man"].image_url == "https://img/spidey.png"
    assert by_name["Hulk"].image_url == "https://img/hulk_full.png"
    assert catalog.champions_by_class("MYSTIC")[0].image_url is None


def test_bare_list_payload_is_accepted() -> None:
    catalog = ChampionCatalog.from_payload([{"name": "Hulk", "class": "science"}])

    assert [c.name for c in catalog.champions_by_class("SCIENCE")] == ["Hulk"]


def test_invalid_payload_raises() -> None:
    with pytest.raises(ChampionCatalogError):
        ChampionCatalog.from_payload({"champions": "nope"})


def test_normalize_class() -> None:
    assert normalize_class(" cosmic ") == "COSMIC"
    assert normalize_class("Superior") == "SUPERIOR"
    assert normalize_class("villain") is None
    assert normalize_class(None) is None


def test_manifest_catalog_reloads_when_file_changes(tmp_path: Path) -> None:
    path = tmp_path / "champions.json"
    path.write_text(json.dumps([{"name": "Hulk", "class": "SCIENCE"}]), encoding="utf-8")
    catalog = ManifestChampionCatalog(path)

    assert [c.name for c in catalog.champions_by_class("SCIENCE")] == ["Hulk"]

    path.write_text(
        json.dumps([{"name": "Hulk", "class": "SCIENCE"}, {"name": "Storm", "class": "MUTANT"}]),
        encoding="utf-8",
    )
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert catalog.classes() == ["MUTANT", "SCIENCE"]


def test_manifest_catalog_missing_or_broken_file(tmp_path: Path) -> None:
    missing = ManifestChampionCatalog(tmp_path / "absent.json")
    with pytest.raises(ChampionCatalogError):
        missing.classes()

    broken_path = tmp_path / "broken.json"
    broken_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ChampionCatalogError):
        ManifestChampionCatalog(broken_path).champions_by_class("SCIENCE")
