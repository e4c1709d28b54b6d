from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BACKEND_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roster_scanner.services.roster_service import create_roster_service  # noqa: E402
from roster_scanner.services.roster_types import RosterScanError  # noqa: E402
from roster_scanner.services.text_detection import (  # noqa: E402
    StaticTextDetector,
    detections_from_payload,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scan a roster screenshot and write the debug overlay."
    )
    parser.add_argument("image", type=Path, help="Path to screenshot image")
    parser.add_argument(
        "--detections",
        type=Path,
        default=None,
        help="JSON file with provider text detections (skips Tesseract)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=BACKEND_DIR / ".cache" / "roster_debug",
        help="Directory for debug outputs",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    image_path = args.image.resolve()
    output_dir = args.output_dir.resolve()

    if not image_path.exists():
        raise FileNotFoundError(f"image not found: {image_path}")

    detector = None
    if args.detections is not None:
        payload = args.detections.read_text(encoding="utf-8")
        detector = StaticTextDetector(detections_from_payload(payload))

    service = create_roster_service(text_detector=detector)
    result = service.process(image_path.read_bytes(), debug_mode=True)

    if result.debug_image is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        overlay_path = output_dir / f"debug_{image_path.stem}.png"
        overlay_path.write_bytes(result.debug_image)
        print("[Overlay]", overlay_path)

    print(f"[Cells] {len(result.grid)}")
    for idx, cell in enumerate(result.grid):
        diag = cell.diagnostics
        print(
            f"- #{idx}: name={cell.champion_name} class={cell.champion_class} "
            f"pi={cell.power_rating} rank={cell.rank} sig={cell.sig_level} "
            f"best={diag.best_match if diag else None} "
            f"distance={diag.min_distance if diag else None}"
        )

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    try:
        main()
    except RosterScanError as exc:
        print(f"[ERROR] {exc}")
        raise SystemExit(1) from exc
