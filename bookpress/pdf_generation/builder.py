"""
Assembles composed cover and spread rasters into one physically sized PDF.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Sequence, Union

from PIL import Image
from reportlab.lib.units import cm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from bookpress.catalog import ProductSpec

logger = logging.getLogger(__name__)

Raster = Union[bytes, Image.Image]


def spread_page_size(product: ProductSpec, metadata_strip_width_cm: float) -> tuple[float, float]:
    """
    Page size in points for one spread: two single pages, each widened by
    half of the metadata strip.
    """
    single_width_cm = product.page.width_cm + metadata_strip_width_cm / 2
    return (2 * single_width_cm * cm, product.page.height_cm * cm)


def cover_page_size(product: ProductSpec) -> tuple[float, float]:
    return (product.cover.total_width_cm * cm, product.cover.total_height_cm * cm)


class PrintDocumentBuilder:
    """
    Render the print document: the unfolded cover as page 1, then one page per spread.

    Each raster fills its page exactly; bleed comes from the product's
    declared dimensions.
    """

    def __init__(self, *, metadata_strip_width_cm: float = 0.3, title: str | None = None) -> None:
        self.metadata_strip_width_cm = metadata_strip_width_cm
        self.title = title

    def build(
        self,
        cover: Raster,
        spreads: Sequence[Raster],
        product: ProductSpec,
        output_path: Path | str | None = None,
    ) -> bytes:
        """
        Build the document and return its bytes; also write it to
        ``output_path`` when given.
        """
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=cover_page_size(product))
        if self.title:
            pdf.setTitle(self.title)
        pdf.setCreator("bookpress")

        self._draw_full_page(pdf, cover, cover_page_size(product))

        spread_size = spread_page_size(product, self.metadata_strip_width_cm)
        for raster in spreads:
            self._draw_full_page(pdf, raster, spread_size)

        pdf.save()
        data = buffer.getvalue()
        logger.info("Assembled print document: %d page(s), %d bytes", 1 + len(spreads), len(data))

        if output_path is not None:
            output_file = Path(output_path)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_bytes(data)
        return data

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def _draw_full_page(pdf: canvas.Canvas, raster: Raster, size: tuple[float, float]) -> None:
        width, height = size
        pdf.setPageSize(size)
        pdf.drawImage(_image_reader(raster), 0, 0, width, height)
        pdf.showPage()


def _image_reader(raster: Raster) -> ImageReader:
    if isinstance(raster, Image.Image):
        return ImageReader(raster)
    return ImageReader(BytesIO(raster))
