"""
Print document assembly.
"""

from .builder import PrintDocumentBuilder, cover_page_size, spread_page_size

__all__ = ["PrintDocumentBuilder", "cover_page_size", "spread_page_size"]
