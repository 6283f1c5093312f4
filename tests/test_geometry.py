"""Tests for centimetre to pixel geometry."""

import copy

import pytest

from bookpress.catalog import ProductSpec
from bookpress.common import InvalidProductSpec
from bookpress.layout import (
    CoverPanel,
    back_cover_side,
    cm_to_px,
    cover_panel_order,
    front_cover_side,
    resolve_geometry,
)
from bookpress.story_generation import Side, WritingDirection
from conftest import PRODUCT_DATA

LTR = WritingDirection.LEFT_TO_RIGHT
RTL = WritingDirection.RIGHT_TO_LEFT


def test_cm_to_px_at_print_resolution():
    assert cm_to_px(20) == 2362
    assert cm_to_px(2.54) == 300
    assert cm_to_px(0) == 0
    assert cm_to_px(2.54, dpi=72) == 72


def test_cm_to_px_rejects_negative_and_bad_dpi():
    with pytest.raises(InvalidProductSpec):
        cm_to_px(-1)
    with pytest.raises(InvalidProductSpec):
        cm_to_px(1, dpi=0)


def test_resolved_dimensions(product):
    geometry = resolve_geometry(product)

    assert geometry.cover_width == 4843
    assert geometry.cover_height == 2480
    assert geometry.cover_panel_width == 2362
    assert geometry.spine_width == 118
    assert geometry.page_width == 2362
    assert geometry.spread_width == 4724
    assert geometry.spread_height == 2362
    assert geometry.metadata_strip_width == 35
    assert geometry.spread_canvas_width == 4759


def test_geometry_is_deterministic(product):
    assert resolve_geometry(product) == resolve_geometry(product)


@pytest.mark.parametrize(
    "section, key",
    [("page", "widthCm"), ("page", "heightCm"), ("cover", "totalWidthCm"), ("cover", "totalHeightCm")],
)
def test_zero_dimension_is_rejected(section, key):
    data = copy.deepcopy(PRODUCT_DATA)
    data[section][key] = 0
    with pytest.raises(InvalidProductSpec):
        ProductSpec.from_mapping(data)


def test_missing_section_is_rejected():
    data = copy.deepcopy(PRODUCT_DATA)
    del data["page"]
    with pytest.raises(InvalidProductSpec):
        ProductSpec.from_mapping(data)


def test_spine_wider_than_cover_is_rejected():
    data = copy.deepcopy(PRODUCT_DATA)
    data["cover"]["spineWidthCm"] = 41.0
    with pytest.raises(InvalidProductSpec):
        ProductSpec.from_mapping(data)


def test_panel_order_follows_writing_direction():
    assert cover_panel_order(LTR) == (CoverPanel.BACK, CoverPanel.SPINE, CoverPanel.FRONT)
    assert cover_panel_order(RTL) == (CoverPanel.FRONT, CoverPanel.SPINE, CoverPanel.BACK)
    assert front_cover_side(LTR) is Side.RIGHT
    assert front_cover_side(RTL) is Side.LEFT
    assert back_cover_side(LTR) is Side.LEFT
    assert back_cover_side(RTL) is Side.RIGHT


@pytest.mark.parametrize("direction", [LTR, RTL])
def test_panel_offsets_match_physical_order(product, direction):
    panels = resolve_geometry(product).cover_panels(direction)

    by_x = sorted(panels.order, key=panels.x_of)
    assert tuple(by_x) == panels.order
    assert panels.spine_x == 2362
    assert panels.x_of(panels.order[-1]) == 2480
    assert panels.back_side is panels.front_side.opposite


def test_flipping_direction_twice_restores_panels(product):
    geometry = resolve_geometry(product)
    assert geometry.cover_panels(LTR.flipped.flipped) == geometry.cover_panels(LTR)
    assert geometry.cover_panels(LTR.flipped).front_x == geometry.cover_panels(LTR).back_x


def test_barcode_box_measured_from_back_panel_right_edge(product):
    geometry = resolve_geometry(product)

    ltr = geometry.barcode_box(LTR)
    assert (ltr.x, ltr.y, ltr.width, ltr.height) == (1713, 2008, 472, 236)

    rtl = geometry.barcode_box(RTL)
    assert rtl.x == 2480 + 1713
    assert rtl.x + rtl.width <= geometry.cover_width


def test_spread_halves_cover_the_spread(product):
    geometry = resolve_geometry(product)
    left = geometry.spread_half(Side.LEFT)
    right = geometry.spread_half(Side.RIGHT)

    assert left.x == 0
    assert right.x == left.width
    assert left.width + right.width == geometry.spread_width
