"""
Print geometry, compositing and the layout engine.
"""

from .engine import PrintLayoutEngine, aspect_fill, image_extension, open_asset
from .geometry import (
    CoverPanel,
    CoverPanels,
    PixelBox,
    PrintGeometry,
    back_cover_side,
    cm_to_px,
    cover_panel_order,
    front_cover_side,
    resolve_geometry,
)
from .graphics import font_size_for_age, render_qr
from .surface import CompositingSurface, Overlay, compose

__all__ = [
    "CompositingSurface",
    "CoverPanel",
    "CoverPanels",
    "Overlay",
    "PixelBox",
    "PrintGeometry",
    "PrintLayoutEngine",
    "aspect_fill",
    "back_cover_side",
    "cm_to_px",
    "compose",
    "cover_panel_order",
    "font_size_for_age",
    "front_cover_side",
    "image_extension",
    "open_asset",
    "render_qr",
    "resolve_geometry",
]
