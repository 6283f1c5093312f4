"""
Product catalog models consumed read-only by the production pipeline.
"""

from .product import (
    ContentBox,
    CoverContent,
    CoverDimensions,
    PageDimensions,
    PageMargins,
    ProductCatalog,
    ProductSpec,
)

__all__ = [
    "ContentBox",
    "CoverContent",
    "CoverDimensions",
    "PageDimensions",
    "PageMargins",
    "ProductCatalog",
    "ProductSpec",
]
