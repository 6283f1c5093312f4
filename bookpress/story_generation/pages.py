"""
Per-spread page records produced by the render loop and consumed by layout.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from .models import Side, WritingDirection

TEXT_BLOCK_TOP_PERCENT = 20.0
TEXT_BLOCK_WIDTH_PERCENT = 35.0


@dataclass(frozen=True)
class TextPosition:
    """Offsets as percentages of the spread (without the metadata strip)."""

    top: float
    left: float
    width: float

    def to_dict(self) -> dict[str, float]:
        return {"top": self.top, "left": self.left, "width": self.width}


@dataclass(frozen=True)
class TextBlock:
    text: str
    position: TextPosition
    alignment: str = "left"

    @classmethod
    def for_side(cls, text: str, side: Side, direction: WritingDirection) -> "TextBlock":
        """
        Block centred in the ``side`` half of the spread, aligned for the
        writing direction.
        """
        half = 50.0
        left = (half - TEXT_BLOCK_WIDTH_PERCENT) / 2
        if side is Side.RIGHT:
            left += half
        return cls(
            text=text,
            position=TextPosition(top=TEXT_BLOCK_TOP_PERCENT, left=left, width=TEXT_BLOCK_WIDTH_PERCENT),
            alignment="right" if direction.is_rtl else "left",
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TextBlock":
        position = data.get("position") or {}
        return cls(
            text=str(data.get("text") or ""),
            position=TextPosition(
                top=float(position.get("top", TEXT_BLOCK_TOP_PERCENT)),
                left=float(position.get("left", 0.0)),
                width=float(position.get("width", TEXT_BLOCK_WIDTH_PERCENT)),
            ),
            alignment=str(data.get("alignment") or "left"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "position": self.position.to_dict(), "alignment": self.alignment}


@dataclass(frozen=True)
class Page:
    """
    One interior spread's final content.

    ``illustration`` holds the encoded raster returned by the illustration
    renderer. Pages are never edited in place; :meth:`with_illustration`
    returns the regenerated copy.
    """

    page_number: int
    text: str
    illustration: bytes
    main_content_side: Side
    text_side: Side
    text_blocks: tuple[TextBlock, ...] = ()
    prompt: str = ""

    def __post_init__(self) -> None:
        if self.text_side is self.main_content_side:
            raise ValueError("A page's text side must be the opposite of its main content side.")

    def with_illustration(self, illustration: bytes) -> "Page":
        return replace(self, illustration=illustration)

    @property
    def paragraphs(self) -> list[str]:
        return [block.strip() for block in self.text.split("\n\n") if block.strip()]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], illustration: bytes) -> "Page":
        return cls(
            page_number=int(data["page_number"]),
            text=str(data.get("text") or ""),
            illustration=illustration,
            main_content_side=Side.parse(data["main_content_side"]),
            text_side=Side.parse(data["text_side"]),
            text_blocks=tuple(TextBlock.from_mapping(item) for item in data.get("text_blocks") or ()),
            prompt=str(data.get("prompt") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "main_content_side": self.main_content_side.value,
            "text_side": self.text_side.value,
            "text_blocks": [block.to_dict() for block in self.text_blocks],
            "prompt": self.prompt,
        }
