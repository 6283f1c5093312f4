"""
Stitch supplied illustrations and a text manifest into a production package,
without calling any generation service.

Usage:
    python scripts/stitch_order.py \
        --manifest manifest.txt \
        --cover cover.png \
        --spreads-dir spreads/ \
        --catalog catalog.yaml \
        --output-dir out/
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bookpress import ProductCatalog, ProductionSession, StoryRequest, load_settings  # noqa: E402
from bookpress.common import ProductionError  # noqa: E402
from bookpress.packaging import ProductionPackager, parse_manifest_text  # noqa: E402
from bookpress.pipeline import stitch_session  # noqa: E402
from bookpress.story_generation import Page, Side, TextBlock  # noqa: E402

logger = logging.getLogger("bookpress.stitch")

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stitch an order from existing illustrations.")
    parser.add_argument("--manifest", required=True, help="Text manifest with the page texts.")
    parser.add_argument("--cover", required=True, help="Unfolded cover illustration.")
    parser.add_argument(
        "--spreads-dir",
        required=True,
        help="Directory of spread illustrations, sorted by file name (spread_01.png, ...).",
    )
    parser.add_argument("--catalog", required=True, help="Product catalog YAML/JSON file.")
    parser.add_argument("--size", default=None, help="Product size id. Defaults to the manifest's Size Id.")
    parser.add_argument("--order-id", default=None, help="Defaults to the manifest's Order Number.")
    parser.add_argument(
        "--text-side",
        choices=("alternate", "left", "right"),
        default="alternate",
        help="Where spread text goes; 'alternate' starts on the left (default).",
    )
    parser.add_argument("--subtitle", default=None, help="Optional subtitle printed under the title.")
    parser.add_argument("--settings", default=None, help="Optional production settings YAML.")
    parser.add_argument("--output-dir", default=".", help="Directory that receives the ZIP archive.")
    return parser.parse_args()


def text_side_for(mode: str, spread_number: int) -> Side:
    if mode == "alternate":
        return Side.LEFT if spread_number % 2 else Side.RIGHT
    return Side.parse(mode)


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = load_settings(args.settings)
    manifest = parse_manifest_text(Path(args.manifest).read_text(encoding="utf-8"))
    order_id = args.order_id or manifest.order_id
    if not order_id:
        raise SystemExit("No order id. Pass --order-id or include 'Order Number' in the manifest.")
    size_id = args.size or manifest.size_id
    if not size_id:
        raise SystemExit("No product size. Pass --size or include 'Size Id' in the manifest.")

    request = StoryRequest(
        child_name=manifest.child_name or "Reader",
        child_age=manifest.child_age,
        language=manifest.language or "en",
        title=manifest.title,
        size_id=size_id,
        customer_name=manifest.fields.get("Customer Name") or None,
        customer_phone=manifest.fields.get("Customer Phone") or None,
    )
    direction = request.writing_direction

    spread_files = sorted(
        path for path in Path(args.spreads_dir).iterdir() if path.suffix.lower() in IMAGE_SUFFIXES
    )
    pages: list[Page] = []
    for number, path in enumerate(spread_files, start=1):
        text = manifest.pages.get(number, "")
        side = text_side_for(args.text_side, number)
        paragraphs = [block.strip() for block in text.split("\n\n") if block.strip()]
        pages.append(
            Page(
                page_number=number,
                text=text,
                illustration=path.read_bytes(),
                main_content_side=side.opposite,
                text_side=side,
                text_blocks=tuple(TextBlock.for_side(p, side, direction) for p in paragraphs),
            )
        )
    if manifest.pages and len(manifest.pages) != len(pages):
        logger.warning(
            "Manifest lists %d page(s) but %d spread image(s) were found.", len(manifest.pages), len(pages)
        )

    session = ProductionSession(
        order_id=order_id,
        request=request,
        product=ProductCatalog.from_file(args.catalog).get(size_id),
        subtitle=args.subtitle,
        pages=pages,
        cover_illustration=Path(args.cover).read_bytes(),
    )

    try:
        stitch_session(session, settings=settings)
        package = ProductionPackager(settings).package(session)
    except ProductionError as exc:
        logger.error("Stitching failed: %s", exc)
        return 1

    output_path = package.write_to(args.output_dir)
    print(f"Saved production package to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
