"""Tests for the print layout engine."""

from io import BytesIO

import cv2
import numpy as np
import pytest
from PIL import Image, ImageOps

from bookpress.common import CompositingFailure, ProductionSettings
from bookpress.layout import PrintLayoutEngine, font_size_for_age, image_extension, render_qr
from bookpress.story_generation import Page, Side, TextBlock, WritingDirection
from conftest import ORDER_ID, png_bytes

LTR = WritingDirection.LEFT_TO_RIGHT
RTL = WritingDirection.RIGHT_TO_LEFT
BASE_COLOR = (90, 140, 200)


def _page(text_side=Side.LEFT, direction=LTR):
    text = "Maya could not sleep.\n\nThe moon was missing its glow."
    return Page(
        page_number=1,
        text=text,
        illustration=png_bytes(),
        main_content_side=text_side.opposite,
        text_side=text_side,
        text_blocks=tuple(TextBlock.for_side(p, text_side, direction) for p in text.split("\n\n")),
    )


def _decode_qr(image: Image.Image) -> str:
    padded = ImageOps.expand(image.convert("RGB"), border=40, fill="white")
    data, _, _ = cv2.QRCodeDetector().detectAndDecode(np.array(padded))
    return data


def _close(pixel, expected, tolerance=3):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))


def test_spread_canvas_includes_metadata_strip(product, settings):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)

    composed = engine.layout_spread(png_bytes(), _page(), product, 1, ORDER_ID, LTR, age=5)

    assert composed.size == (geometry.spread_width + geometry.metadata_strip_width, geometry.spread_height)
    assert composed.size == (952, 472)


@pytest.mark.parametrize("text_side", [Side.LEFT, Side.RIGHT])
def test_text_block_stays_inside_text_half(product, settings, text_side):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)
    page = _page(text_side)

    overlays = engine.spread_overlays(geometry, page, 1, ORDER_ID, LTR, age=5)
    text = next(item for item in overlays if item.label == "text")
    half = geometry.spread_half(text_side)

    assert half.x <= text.x
    assert text.x + text.image.width <= half.x + half.width

    composed = engine.layout_spread(png_bytes(color=BASE_COLOR), page, product, 1, ORDER_ID, LTR, age=5)
    main_half = geometry.spread_half(text_side.opposite)
    centre = (main_half.x + main_half.width // 2, geometry.spread_height // 2)
    assert _close(composed.getpixel(centre), BASE_COLOR)


RED = (220, 30, 30)
GREEN = (30, 180, 60)
BLUE = (30, 60, 220)
MARKER = (0, 0, 0)


def _marked_illustration(width, height, horizontal):
    image = Image.new("RGB", (width, height), GREEN)
    if horizontal:
        image.paste(RED, (0, 0, width // 4, height))
        image.paste(BLUE, (width - width // 4, 0, width, height))
    else:
        image.paste(RED, (0, 0, width, height // 8))
        image.paste(BLUE, (0, height - height // 8, width, height))
    image.paste(MARKER, (width // 2 - 10, height // 2 - 10, width // 2 + 10, height // 2 + 10))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _is_white(pixel):
    return all(channel > 245 for channel in pixel[:3])


@pytest.mark.parametrize(
    "size, horizontal",
    [((1600, 900), True), ((400, 800), False)],
    ids=["wide", "tall"],
)
def test_spread_illustration_fills_without_letterboxing(product, settings, size, horizontal):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)
    page = Page(
        page_number=1,
        text="Moon.",
        illustration=b"",
        main_content_side=Side.RIGHT,
        text_side=Side.LEFT,
        text_blocks=(TextBlock.for_side("Moon.", Side.LEFT, LTR),),
    )

    composed = engine.layout_spread(_marked_illustration(*size, horizontal), page, product, 1, ORDER_ID, LTR)
    width, height = geometry.spread_width, geometry.spread_height

    for x in (0, width - 1):
        assert not any(_is_white(composed.getpixel((x, y))) for y in range(height))
    for y in (0, height - 1):
        assert not any(_is_white(composed.getpixel((x, y))) for x in range(width))
    assert _close(composed.getpixel((width // 2, height // 2)), MARKER, tolerance=40)
    if horizontal:
        assert _close(composed.getpixel((1, height // 2)), RED, tolerance=10)
        assert _close(composed.getpixel((width - 2, height // 2)), BLUE, tolerance=10)
    else:
        # The tall source loses its top and bottom bands to the centre crop.
        assert _close(composed.getpixel((width // 4, 1)), GREEN, tolerance=10)
        assert _close(composed.getpixel((width // 4, height - 2)), GREEN, tolerance=10)


def test_metadata_strip_sits_on_the_trailing_edge(product, settings):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)

    overlays = engine.spread_overlays(geometry, _page(), 3, ORDER_ID, LTR)
    strip = next(item for item in overlays if item.label == "metadata_strip")

    assert strip.x == geometry.spread_width
    assert strip.image.size == (geometry.metadata_strip_width, geometry.spread_height)


def test_spread_layout_is_deterministic(product, settings):
    engine = PrintLayoutEngine(settings)
    page = _page()

    first = engine.layout_spread(page.illustration, page, product, 1, ORDER_ID, LTR, age=5)
    second = engine.layout_spread(page.illustration, page, product, 1, ORDER_ID, LTR, age=5)

    assert first.tobytes() == second.tobytes()


def test_undecodable_illustration_raises_compositing_failure(product, settings):
    engine = PrintLayoutEngine(settings)

    with pytest.raises(CompositingFailure) as excinfo:
        engine.layout_spread(b"not an image", _page(), product, 2, ORDER_ID, LTR)
    assert excinfo.value.spread == 2


def test_cover_has_physical_size(product, settings):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)

    cover = engine.layout_cover(png_bytes(), product, ORDER_ID, "Maya's Moon Garden", LTR)

    assert cover.size == (geometry.cover_width, geometry.cover_height)


@pytest.mark.parametrize("direction", [LTR, RTL])
def test_cover_elements_land_on_their_panels(product, settings, direction):
    engine = PrintLayoutEngine(settings)
    geometry = engine.geometry(product)
    panels = geometry.cover_panels(direction)

    overlays = {
        item.label: item
        for item in engine.cover_overlays(geometry, ORDER_ID, "Maya's Moon Garden", direction, subtitle="A bedtime story")
    }

    for label in ("title", "subtitle"):
        assert panels.front_x <= overlays[label].x < panels.front_x + panels.panel_width
    for label in ("qr", "logo", "barcode"):
        assert panels.back_x <= overlays[label].x < panels.back_x + panels.panel_width
    assert overlays["logo"].y + overlays["logo"].image.height < overlays["qr"].y


def test_decorative_barcode_can_be_disabled(product):
    engine = PrintLayoutEngine(ProductionSettings(dpi=60, include_decorative_barcode=False))
    geometry = engine.geometry(product)

    labels = [item.label for item in engine.cover_overlays(geometry, ORDER_ID, "Title", LTR)]

    assert "barcode" not in labels


def test_cover_qr_decodes_to_order_id(product):
    engine = PrintLayoutEngine(ProductionSettings())
    geometry = engine.geometry(product)
    qr = next(
        item
        for item in engine.cover_overlays(geometry, ORDER_ID, "Maya's Moon Garden", LTR)
        if item.label == "qr"
    )

    cover = engine.layout_cover(png_bytes(), product, ORDER_ID, "Maya's Moon Garden", LTR)
    region = cover.crop((qr.x, qr.y, qr.x + qr.image.width, qr.y + qr.image.height))

    assert qr.image.width == 295
    assert _decode_qr(region) == ORDER_ID


def test_render_qr_encodes_verbatim():
    assert _decode_qr(render_qr("RWY-XYZ 42/7", 300)) == "RWY-XYZ 42/7"


def test_font_size_shrinks_with_age():
    assert font_size_for_age(3, 72) == 22
    assert font_size_for_age(5, 72) == 18
    assert font_size_for_age(8, 72) == 16
    assert font_size_for_age(11, 72) == 14
    assert font_size_for_age(None, 300) == 75


def test_image_extension_detects_format():
    assert image_extension(png_bytes()) == ".png"
    assert image_extension(b"garbage") == ".png"
