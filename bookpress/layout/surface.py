"""
Off-screen compositing surface used by the print layout engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from PIL import Image

from bookpress.common import CompositingFailure

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


@dataclass(frozen=True)
class Overlay:
    """
    An already-rendered element placed at absolute pixel offsets.

    Transparent pixels of ``image`` leave whatever is underneath untouched.
    """

    image: Image.Image
    x: int
    y: int
    label: str = ""


class CompositingSurface:
    """
    Single-use off-screen RGB canvas.

    Use it as a context manager: the canvas is allocated on entry and
    released on exit, whether or not the body raised.
    """

    def __init__(
        self,
        width: int,
        height: int,
        *,
        background: tuple[int, int, int] = WHITE,
    ) -> None:
        if width <= 0 or height <= 0:
            raise CompositingFailure(f"Surface size must be positive, got {width}x{height}.")
        self.width = width
        self.height = height
        self._background = background
        self._canvas: Image.Image | None = None
        self._used = False

    def __enter__(self) -> "CompositingSurface":
        if self._used:
            raise CompositingFailure("A compositing surface can only be used once.")
        self._used = True
        self._canvas = Image.new("RGB", (self.width, self.height), self._background)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._canvas is None

    def draw_base(self, image: Image.Image) -> None:
        """Draw ``image`` at its native size, anchored top-left."""
        self._paste(image, 0, 0)

    def draw(self, overlay: Overlay) -> None:
        self._paste(overlay.image, overlay.x, overlay.y)

    def flatten(self) -> Image.Image:
        return self._require_canvas().copy()

    def close(self) -> None:
        if self._canvas is not None:
            self._canvas.close()
            self._canvas = None

    def _paste(self, image: Image.Image, x: int, y: int) -> None:
        canvas = self._require_canvas()
        has_alpha = image.mode in ("RGBA", "LA", "P", "PA")
        converted = image.convert("RGBA" if has_alpha else "RGB")
        try:
            canvas.paste(converted, (x, y), converted if has_alpha else None)
        finally:
            converted.close()

    def _require_canvas(self) -> Image.Image:
        if self._canvas is None:
            raise CompositingFailure("Compositing surface is not open.")
        return self._canvas


def compose(
    base_image: Image.Image,
    overlays: Sequence[Overlay],
    target_width: int | None = None,
    target_height: int | None = None,
) -> Image.Image:
    """
    Flatten ``base_image`` and ``overlays`` into one RGB raster.

    The canvas defaults to the base image's size; a larger target adds white
    space to the right and bottom without resizing the base. Overlays are
    painted in order, later entries over earlier ones.

    Raises
    ------
    CompositingFailure
        When the raster cannot be produced. The surface is released first.
    """
    width = target_width or base_image.width
    height = target_height or base_image.height
    try:
        with CompositingSurface(width, height) as surface:
            surface.draw_base(base_image)
            for overlay in overlays:
                surface.draw(overlay)
            return surface.flatten()
    except CompositingFailure:
        raise
    except (OSError, ValueError, MemoryError) as exc:
        logger.error("Compositing a %dx%d raster failed: %s", width, height, exc)
        raise CompositingFailure(f"Could not flatten {width}x{height} raster: {exc}") from exc
