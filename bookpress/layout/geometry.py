"""
Centimetre to pixel geometry for covers and spreads.

Every pixel value is converted straight from centimetres with
``cm_to_px``; derived pixel values are never fed back into further
arithmetic, so rounding does not compound.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from bookpress.catalog import ProductSpec
from bookpress.common import InvalidProductSpec
from bookpress.story_generation import Side, WritingDirection

CM_PER_INCH = 2.54
DEFAULT_DPI = 300


def cm_to_px(cm: float, dpi: int = DEFAULT_DPI) -> int:
    """
    Convert centimetres to whole pixels: ``round(cm * dpi / 2.54)``.

    Halves round up.
    """
    if cm < 0:
        raise InvalidProductSpec(f"Centimetre values must not be negative, got {cm}.")
    if dpi <= 0:
        raise InvalidProductSpec(f"DPI must be positive, got {dpi}.")
    return int(math.floor(cm * dpi / CM_PER_INCH + 0.5))


class CoverPanel(str, Enum):
    BACK = "back"
    SPINE = "spine"
    FRONT = "front"


def cover_panel_order(direction: WritingDirection) -> tuple[CoverPanel, CoverPanel, CoverPanel]:
    """Left-to-right physical order of the unfolded cover panels."""
    if direction.is_rtl:
        return (CoverPanel.FRONT, CoverPanel.SPINE, CoverPanel.BACK)
    return (CoverPanel.BACK, CoverPanel.SPINE, CoverPanel.FRONT)


def front_cover_side(direction: WritingDirection) -> Side:
    return Side.LEFT if direction.is_rtl else Side.RIGHT


def back_cover_side(direction: WritingDirection) -> Side:
    return front_cover_side(direction).opposite


@dataclass(frozen=True)
class PixelBox:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class CoverPanels:
    """
    Physical placement of the front, spine and back panels for one writing direction.
    """

    direction: WritingDirection
    order: tuple[CoverPanel, CoverPanel, CoverPanel]
    front_side: Side
    back_side: Side
    front_x: int
    spine_x: int
    back_x: int
    panel_width: int
    spine_width: int

    def x_of(self, panel: CoverPanel) -> int:
        return {
            CoverPanel.FRONT: self.front_x,
            CoverPanel.SPINE: self.spine_x,
            CoverPanel.BACK: self.back_x,
        }[panel]


@dataclass(frozen=True)
class PrintGeometry:
    """
    Pixel geometry of one product at one resolution.

    Cover placement boxes are resolved per writing direction through
    :meth:`cover_panels` and :meth:`barcode_box`.
    """

    product: ProductSpec
    dpi: int
    cover_width: int
    cover_height: int
    cover_panel_width: int
    spine_width: int
    page_width: int
    page_height: int
    spread_width: int
    spread_height: int
    metadata_strip_width: int
    margin_top: int
    margin_bottom: int
    margin_outer: int
    margin_inner: int
    title_top: int
    title_width: int
    format_top: int
    format_width: int

    @property
    def spread_canvas_width(self) -> int:
        """Spread width including the appended metadata strip."""
        return self.spread_width + self.metadata_strip_width

    def px(self, cm: float) -> int:
        return cm_to_px(cm, self.dpi)

    def cover_panels(self, direction: WritingDirection) -> CoverPanels:
        cover = self.product.cover
        panel_cm = cover.panel_width_cm
        far_x = self.px(panel_cm + cover.spine_width_cm)
        if direction.is_rtl:
            front_x, back_x = 0, far_x
        else:
            front_x, back_x = far_x, 0
        front = front_cover_side(direction)
        return CoverPanels(
            direction=direction,
            order=cover_panel_order(direction),
            front_side=front,
            back_side=back_cover_side(direction),
            front_x=front_x,
            spine_x=self.px(panel_cm),
            back_x=back_x,
            panel_width=self.cover_panel_width,
            spine_width=self.spine_width,
        )

    def barcode_box(self, direction: WritingDirection) -> PixelBox:
        """
        The barcode box inside the back panel; ``fromRightCm`` is measured
        from the back panel's right edge.
        """
        box = self.product.cover_content.barcode
        panels = self.cover_panels(direction)
        width = self.px(box.width_cm)
        x = panels.back_x + panels.panel_width - self.px(box.from_right_cm or 0.0) - width
        return PixelBox(
            x=max(panels.back_x, x),
            y=self.px(box.from_top_cm),
            width=width,
            height=self.px(box.height_cm or 0.0),
        )

    def spread_half(self, side: Side) -> PixelBox:
        """Horizontal extent of one page of the spread (strip excluded)."""
        half = self.spread_width // 2
        if side is Side.LEFT:
            return PixelBox(x=0, y=0, width=half, height=self.spread_height)
        return PixelBox(x=half, y=0, width=self.spread_width - half, height=self.spread_height)


def resolve_geometry(
    product: ProductSpec,
    *,
    dpi: int = DEFAULT_DPI,
    metadata_strip_width_cm: float = 0.3,
) -> PrintGeometry:
    """
    Resolve every pixel dimension of ``product`` at ``dpi``.

    Raises
    ------
    InvalidProductSpec
        For zero or negative dimensions.
    """
    cover = product.cover
    page = product.page
    for label, value in (
        ("cover.totalWidthCm", cover.total_width_cm),
        ("cover.totalHeightCm", cover.total_height_cm),
        ("page.widthCm", page.width_cm),
        ("page.heightCm", page.height_cm),
    ):
        if value <= 0:
            raise InvalidProductSpec(f"{label} must be greater than zero, got {value}.")

    def px(cm: float) -> int:
        return cm_to_px(cm, dpi)

    content = product.cover_content
    margins = product.margins
    return PrintGeometry(
        product=product,
        dpi=dpi,
        cover_width=px(cover.total_width_cm),
        cover_height=px(cover.total_height_cm),
        cover_panel_width=px(cover.panel_width_cm),
        spine_width=px(cover.spine_width_cm),
        page_width=px(page.width_cm),
        page_height=px(page.height_cm),
        spread_width=px(page.width_cm * 2),
        spread_height=px(page.height_cm),
        metadata_strip_width=px(metadata_strip_width_cm),
        margin_top=px(margins.top_cm),
        margin_bottom=px(margins.bottom_cm),
        margin_outer=px(margins.outer_cm),
        margin_inner=px(margins.inner_cm),
        title_top=px(content.title.from_top_cm),
        title_width=px(content.title.width_cm),
        format_top=px(content.format.from_top_cm),
        format_width=px(content.format.width_cm),
    )
