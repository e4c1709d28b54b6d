from __future__ import annotations

import sys
import time
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BACKEND_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roster_scanner.services.roster_service import create_roster_service  # noqa: E402


def main() -> None:
    started = time.perf_counter()
    matcher = create_roster_service().matcher

    total = 0
    for champion_class in matcher.catalog.classes():
        hashes = matcher.get_reference_hashes(champion_class)
        members = matcher.catalog.champions_by_class(champion_class)
        total += len(hashes)
        print(
            f"[{champion_class}] hashed={len(hashes)} failed={len(members) - len(hashes)}"
        )

    elapsed = time.perf_counter() - started
    print(
        f"[OK] reference cache warmed: {total} hashes, "
        f"cache_dir={matcher.cache_dir}, elapsed={elapsed:.2f}s"
    )


if __name__ == "__main__":
    main()
