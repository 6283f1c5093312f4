"""
Print layout: turns finished cover and spread illustrations into print-ready rasters.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Union

from PIL import Image, ImageOps, UnidentifiedImageError

from bookpress.catalog import ProductSpec
from bookpress.common import CompositingFailure, ProductionSettings
from bookpress.story_generation import Page, WritingDirection

from .geometry import PrintGeometry, resolve_geometry
from .graphics import (
    font_size_for_age,
    render_barcode,
    render_logo,
    render_metadata_strip,
    render_qr,
    render_text_block,
    render_title,
)
from .surface import Overlay, compose

logger = logging.getLogger(__name__)

Asset = Union[bytes, Image.Image]

TITLE_FONT_CM = 1.4
SUBTITLE_FONT_CM = 0.6


def open_asset(asset: Asset) -> Image.Image:
    """Decode an illustration into an RGB image."""
    if isinstance(asset, Image.Image):
        return asset.convert("RGB")
    try:
        with Image.open(BytesIO(asset)) as source:
            return source.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise CompositingFailure(f"Illustration could not be decoded: {exc}") from exc


def image_extension(data: bytes) -> str:
    """File extension matching the encoded image format, ``.png`` when unknown."""
    try:
        with Image.open(BytesIO(data)) as source:
            fmt = (source.format or "PNG").lower()
    except (UnidentifiedImageError, OSError):
        return ".png"
    return {"jpeg": ".jpg"}.get(fmt, f".{fmt}")


def aspect_fill(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover ``width`` x ``height`` and centre-crop the excess."""
    return ImageOps.fit(image, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))


class PrintLayoutEngine:
    """
    Composes covers and spreads on the physical geometry of a product.

    Parameters
    ----------
    settings:
        DPI, metadata strip width and back-cover element sizes.
    """

    def __init__(self, settings: ProductionSettings | None = None) -> None:
        self.settings = settings or ProductionSettings()

    def geometry(self, product: ProductSpec) -> PrintGeometry:
        return resolve_geometry(
            product,
            dpi=self.settings.dpi,
            metadata_strip_width_cm=self.settings.metadata_strip_width_cm,
        )

    # ------------------------------------------------------------------ cover

    def layout_cover(
        self,
        cover_asset: Asset,
        product: ProductSpec,
        order_id: str,
        title: str,
        writing_direction: WritingDirection,
        *,
        subtitle: str | None = None,
    ) -> Image.Image:
        geometry = self.geometry(product)
        logger.debug(
            "Composing %dx%d cover for order %s (%s)",
            geometry.cover_width,
            geometry.cover_height,
            order_id,
            writing_direction.value,
        )
        try:
            base = aspect_fill(open_asset(cover_asset), geometry.cover_width, geometry.cover_height)
            overlays = self.cover_overlays(
                geometry, order_id, title, writing_direction, subtitle=subtitle
            )
            return compose(base, overlays, geometry.cover_width, geometry.cover_height)
        except CompositingFailure as exc:
            raise exc.with_context(stage="cover")

    def cover_overlays(
        self,
        geometry: PrintGeometry,
        order_id: str,
        title: str,
        writing_direction: WritingDirection,
        *,
        subtitle: str | None = None,
    ) -> list[Overlay]:
        """
        Title (and optional subtitle) on the front panel; logo, QR and
        decorative barcode on the back panel.
        """
        settings = self.settings
        panels = geometry.cover_panels(writing_direction)
        overlays: list[Overlay] = []

        if settings.include_decorative_barcode:
            box = geometry.barcode_box(writing_direction)
            if box.width > 0 and box.height > 0:
                overlays.append(
                    Overlay(render_barcode(order_id, box.width, box.height), box.x, box.y, "barcode")
                )

        title_width = min(geometry.title_width, panels.panel_width)
        title_image = render_title(title, width=title_width, font_size=geometry.px(TITLE_FONT_CM))
        overlays.append(
            Overlay(
                title_image,
                panels.front_x + (panels.panel_width - title_width) // 2,
                geometry.title_top,
                "title",
            )
        )

        if subtitle:
            format_width = min(geometry.format_width, panels.panel_width)
            subtitle_image = render_text_block(
                [subtitle],
                width=format_width,
                font_size=geometry.px(SUBTITLE_FONT_CM),
                align="center",
                panel=False,
            )
            overlays.append(
                Overlay(
                    subtitle_image,
                    panels.front_x + (panels.panel_width - format_width) // 2,
                    geometry.format_top,
                    "subtitle",
                )
            )

        qr_size = geometry.px(settings.qr_size_cm)
        qr_x = panels.back_x + (panels.panel_width - qr_size) // 2
        qr_y = min(round(geometry.cover_height * settings.qr_top_ratio), geometry.cover_height - qr_size)

        logo = render_logo(
            geometry.px(settings.logo_width_cm),
            brand_name=settings.brand_name,
            logo_path=settings.logo_path,
        )
        logo_y = max(0, qr_y - geometry.px(settings.logo_gap_cm) - logo.height)
        overlays.append(
            Overlay(logo, panels.back_x + (panels.panel_width - logo.width) // 2, logo_y, "logo")
        )
        overlays.append(Overlay(render_qr(order_id, qr_size), qr_x, qr_y, "qr"))
        return overlays

    # ------------------------------------------------------------------ spreads

    def layout_spread(
        self,
        spread_asset: Asset,
        page: Page,
        product: ProductSpec,
        spread_index: int,
        order_id: str,
        writing_direction: WritingDirection,
        *,
        age: int | None = None,
    ) -> Image.Image:
        geometry = self.geometry(product)
        try:
            base = aspect_fill(open_asset(spread_asset), geometry.spread_width, geometry.spread_height)
            overlays = self.spread_overlays(
                geometry, page, spread_index, order_id, writing_direction, age=age
            )
            return compose(base, overlays, geometry.spread_canvas_width, geometry.spread_height)
        except CompositingFailure as exc:
            raise exc.with_context(stage="layout", spread=spread_index)

    def spread_overlays(
        self,
        geometry: PrintGeometry,
        page: Page,
        spread_index: int,
        order_id: str,
        writing_direction: WritingDirection,
        *,
        age: int | None = None,
    ) -> list[Overlay]:
        """
        One text block centred in the page's text-side half plus the metadata
        strip on the trailing edge.
        """
        overlays: list[Overlay] = []
        paragraphs = [block.text for block in page.text_blocks] or page.paragraphs
        if paragraphs:
            half = geometry.spread_half(page.text_side)
            first = page.text_blocks[0] if page.text_blocks else None
            width_percent = first.position.width if first else 35.0
            top_percent = first.position.top if first else 20.0
            align = first.alignment if first else ("right" if writing_direction.is_rtl else "left")

            block_width = min(half.width, round(geometry.spread_width * width_percent / 100))
            text_image = render_text_block(
                paragraphs,
                width=block_width,
                font_size=font_size_for_age(age, geometry.dpi),
                align=align,
            )
            y = round(geometry.spread_height * top_percent / 100)
            lowest = geometry.spread_height - geometry.margin_bottom - text_image.height
            if y > lowest:
                y = max(geometry.margin_top, lowest)
            overlays.append(
                Overlay(text_image, half.x + (half.width - block_width) // 2, y, "text")
            )

        if geometry.metadata_strip_width > 0:
            strip = render_metadata_strip(
                order_id,
                spread_index,
                geometry.metadata_strip_width,
                geometry.spread_height,
            )
            overlays.append(Overlay(strip, geometry.spread_width, 0, "metadata_strip"))
        return overlays
