"""
CLI to run the complete book production pipeline end-to-end.

Usage:
    python scripts/run_full_pipeline.py \
        --order order.yaml \
        --catalog catalog.yaml \
        --order-id RWY-ABC123 \
        --reference-image example_images/child.jpg \
        --output-dir out/
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping

import yaml
from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bookpress import (  # noqa: E402
    BookProductionPipeline,
    ProductCatalog,
    StoryRequest,
    load_settings,
)
from bookpress.ai_generation import (  # noqa: E402
    CharacterLock,
    ReplicateIllustrationRenderer,
    StyleLock,
)
from bookpress.common import ProductionError  # noqa: E402
from bookpress.pipeline import STAGES  # noqa: E402
from bookpress.story_generation import LiteLLMStoryDirector  # noqa: E402

logger = logging.getLogger("bookpress.cli")


class ProgressTracker:
    """
    Command-line progress updates for a production run.
    """

    def __init__(self) -> None:
        self._spread_bar: tqdm | None = None
        self._layout_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Mapping[str, Any]) -> None:
        match stage:
            case "stage_started":
                index, total = payload.get("index"), payload.get("total")
                label = STAGES[index - 1].label if index else payload.get("stage")
                self._write(f"[{index}/{total}] {label}...")
            case "stage_succeeded":
                self._write(f"[{payload.get('index')}/{payload.get('total')}] {payload.get('stage')} approved.")
            case "stage_failed":
                self._write(f"Stage {payload.get('stage')} failed: {payload.get('error')}")
            case "spread_rendered":
                if self._spread_bar is None:
                    self._spread_bar = tqdm(total=payload.get("total", 0), desc="Illustrated spreads", unit="spread")
                self._spread_bar.update(1)
            case "cover_rendered":
                self._close_spread_bar()
                self._write("Cover illustration ready.")
            case "layout_started":
                self._layout_bar = tqdm(total=payload.get("total", 0), desc="Print layout", unit="spread")
            case "spread_composed":
                if self._layout_bar is not None:
                    self._layout_bar.update(1)
            case "layout_finished":
                self.close()
                self._write("Print document assembled.")

    def close(self) -> None:
        self._close_spread_bar()
        if self._layout_bar is not None:
            self._layout_bar.close()
            self._layout_bar = None

    def _close_spread_bar(self) -> None:
        if self._spread_bar is not None:
            self._spread_bar.close()
            self._spread_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Produce a print-ready book package for one order.")
    parser.add_argument("--order", required=True, help="Path to the order details YAML/JSON file.")
    parser.add_argument("--catalog", required=True, help="Path to the product catalog YAML/JSON file.")
    parser.add_argument("--order-id", required=True, help="Order identifier encoded on the cover.")
    parser.add_argument(
        "--size",
        default=None,
        help="Product size id. Defaults to the order's size_id.",
    )
    parser.add_argument(
        "--reference-image",
        default=None,
        help="Path or URL to the child's reference photo.",
    )
    parser.add_argument(
        "--style-guide",
        default="",
        help="Style guide text, or a path to a text file containing it.",
    )
    parser.add_argument("--subtitle", default=None, help="Optional subtitle printed under the title.")
    parser.add_argument("--seed", type=int, default=None, help="Seed forwarded to the illustration model.")
    parser.add_argument("--settings", default=None, help="Optional production settings YAML.")
    parser.add_argument("--output-dir", default=".", help="Directory that receives the ZIP archive.")
    parser.add_argument(
        "--session-dir",
        default=None,
        help="Directory to save the session snapshot to (also written when the run fails).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    return parser.parse_args()


def load_mapping(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported order file format. Use YAML or JSON.")

    if not isinstance(data, dict):
        raise ValueError("Order file must deserialize to a mapping.")
    return data


def read_style_guide(value: str) -> str:
    candidate = Path(value)
    if value and candidate.is_file():
        return candidate.read_text(encoding="utf-8")
    return value


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.settings)
    request = StoryRequest.from_mapping(load_mapping(Path(args.order)))
    catalog = ProductCatalog.from_file(args.catalog)
    size_id = args.size or request.size_id
    if not size_id:
        raise SystemExit("No product size given. Pass --size or set size_id in the order file.")
    product = catalog.get(size_id)

    tracker = ProgressTracker()
    pipeline = BookProductionPipeline(
        story_service=LiteLLMStoryDirector(spread_count=settings.default_spread_count),
        renderer=ReplicateIllustrationRenderer(),
        settings=settings,
        progress_callback=tracker,
    )
    session = pipeline.create_session(
        request,
        product,
        order_id=args.order_id,
        style_guide=read_style_guide(args.style_guide),
        subtitle=args.subtitle,
    )
    style_lock = StyleLock(description=session.style_guide, seed=args.seed)
    character_lock = CharacterLock(name=request.child_name, reference_image=args.reference_image)

    try:
        package = pipeline.produce(session, style_lock, character_lock)
    except ProductionError as exc:
        logger.error("Production failed: %s", exc)
        return 1
    finally:
        tracker.close()
        if args.session_dir:
            session.save(args.session_dir)

    output_path = package.write_to(args.output_dir)
    print(f"Saved production package to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
