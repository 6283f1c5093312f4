"""
Physical book sizes published by the product catalog.

All measurements are centimetres. The pipeline only reads these records.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from bookpress.common import InvalidProductSpec


def _positive(value: Any, label: str) -> float:
    number = _number(value, label)
    if number <= 0:
        raise InvalidProductSpec(f"{label} must be greater than zero, got {number}.")
    return number


def _non_negative(value: Any, label: str) -> float:
    number = _number(value, label)
    if number < 0:
        raise InvalidProductSpec(f"{label} must not be negative, got {number}.")
    return number


def _number(value: Any, label: str) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidProductSpec(f"{label} is required.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidProductSpec(f"{label} must be numeric, got {value!r}.") from exc


def _section(data: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, Mapping):
            return value
    raise InvalidProductSpec(f"Product spec is missing the '{keys[0]}' section.")


@dataclass(frozen=True)
class CoverDimensions:
    total_width_cm: float
    total_height_cm: float
    spine_width_cm: float

    @property
    def panel_width_cm(self) -> float:
        """Width of one cover panel (front or back)."""
        return (self.total_width_cm - self.spine_width_cm) / 2


@dataclass(frozen=True)
class PageDimensions:
    width_cm: float
    height_cm: float


@dataclass(frozen=True)
class PageMargins:
    top_cm: float = 0.0
    bottom_cm: float = 0.0
    outer_cm: float = 0.0
    inner_cm: float = 0.0


@dataclass(frozen=True)
class ContentBox:
    """
    Placement box on the cover.

    ``from_right_cm`` is measured from the outer edge of the panel holding the
    box; ``height_cm`` is optional for text boxes whose height follows the
    rendered text.
    """

    from_top_cm: float
    width_cm: float
    height_cm: float | None = None
    from_right_cm: float | None = None


@dataclass(frozen=True)
class CoverContent:
    title: ContentBox
    format: ContentBox
    barcode: ContentBox


@dataclass(frozen=True)
class ProductSpec:
    """
    A named physical book size.

    Validation happens at construction so malformed geometry is rejected
    before any pixel math runs.
    """

    id: str
    name: str
    price: float
    cover: CoverDimensions
    page: PageDimensions
    margins: PageMargins
    cover_content: CoverContent

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidProductSpec("Product spec id must be a non-empty string.")
        if self.cover.spine_width_cm >= self.cover.total_width_cm:
            raise InvalidProductSpec("Spine width must be smaller than the total cover width.")
        if self.margins.outer_cm + self.margins.inner_cm >= self.page.width_cm:
            raise InvalidProductSpec("Horizontal margins leave no printable page width.")
        if self.margins.top_cm + self.margins.bottom_cm >= self.page.height_cm:
            raise InvalidProductSpec("Vertical margins leave no printable page height.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProductSpec":
        """
        Build a product from catalog data (camelCase or snake_case keys).
        """
        if not isinstance(data, Mapping):
            raise InvalidProductSpec("Product spec payload must be a mapping.")

        product_id = str(data.get("id") or "").strip()
        cover = _section(data, "cover")
        page = _section(data, "page")
        margins = data.get("margins") or {}
        content = _section(data, "coverContent", "cover_content")

        return cls(
            id=product_id,
            name=str(data.get("name") or product_id).strip(),
            price=_non_negative(data.get("price", 0), "price"),
            cover=CoverDimensions(
                total_width_cm=_positive(_pick(cover, "totalWidthCm", "total_width_cm"), "cover.totalWidthCm"),
                total_height_cm=_positive(_pick(cover, "totalHeightCm", "total_height_cm"), "cover.totalHeightCm"),
                spine_width_cm=_non_negative(_pick(cover, "spineWidthCm", "spine_width_cm", default=0), "cover.spineWidthCm"),
            ),
            page=PageDimensions(
                width_cm=_positive(_pick(page, "widthCm", "width_cm"), "page.widthCm"),
                height_cm=_positive(_pick(page, "heightCm", "height_cm"), "page.heightCm"),
            ),
            margins=PageMargins(
                top_cm=_non_negative(_pick(margins, "topCm", "top_cm", default=0), "margins.topCm"),
                bottom_cm=_non_negative(_pick(margins, "bottomCm", "bottom_cm", default=0), "margins.bottomCm"),
                outer_cm=_non_negative(_pick(margins, "outerCm", "outer_cm", default=0), "margins.outerCm"),
                inner_cm=_non_negative(_pick(margins, "innerCm", "inner_cm", default=0), "margins.innerCm"),
            ),
            cover_content=CoverContent(
                title=_content_box(_section(content, "title"), "coverContent.title"),
                format=_content_box(_section(content, "format", "subtitle"), "coverContent.format"),
                barcode=_content_box(_section(content, "barcode"), "coverContent.barcode", boxed=True),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        def box(item: ContentBox) -> dict[str, Any]:
            payload: dict[str, Any] = {"fromTopCm": item.from_top_cm, "widthCm": item.width_cm}
            if item.height_cm is not None:
                payload["heightCm"] = item.height_cm
            if item.from_right_cm is not None:
                payload["fromRightCm"] = item.from_right_cm
            return payload

        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "cover": {
                "totalWidthCm": self.cover.total_width_cm,
                "totalHeightCm": self.cover.total_height_cm,
                "spineWidthCm": self.cover.spine_width_cm,
            },
            "page": {"widthCm": self.page.width_cm, "heightCm": self.page.height_cm},
            "margins": {
                "topCm": self.margins.top_cm,
                "bottomCm": self.margins.bottom_cm,
                "outerCm": self.margins.outer_cm,
                "innerCm": self.margins.inner_cm,
            },
            "coverContent": {
                "title": box(self.cover_content.title),
                "format": box(self.cover_content.format),
                "barcode": box(self.cover_content.barcode),
            },
        }


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _content_box(data: Mapping[str, Any], label: str, *, boxed: bool = False) -> ContentBox:
    height = _pick(data, "heightCm", "height_cm")
    from_right = _pick(data, "fromRightCm", "from_right_cm")
    if boxed:
        height = _positive(height, f"{label}.heightCm")
        from_right = _non_negative(from_right, f"{label}.fromRightCm")
    return ContentBox(
        from_top_cm=_non_negative(_pick(data, "fromTopCm", "from_top_cm"), f"{label}.fromTopCm"),
        width_cm=_positive(_pick(data, "widthCm", "width_cm"), f"{label}.widthCm"),
        height_cm=None if height is None else _positive(height, f"{label}.heightCm"),
        from_right_cm=None if from_right is None else _non_negative(from_right, f"{label}.fromRightCm"),
    )


class ProductCatalog:
    """
    Read-only lookup over the product sizes exported by the catalog service.
    """

    def __init__(self, products: Mapping[str, ProductSpec]) -> None:
        self._products = dict(products)

    @classmethod
    def from_file(cls, path: str | Path) -> "ProductCatalog":
        source = Path(path)
        text = source.read_text(encoding="utf-8")
        if source.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        elif source.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            raise ValueError("Unsupported catalog file format. Use YAML or JSON.")

        entries = data.get("products", data) if isinstance(data, Mapping) else data
        if not isinstance(entries, list):
            raise ValueError("Catalog file must contain a list of products.")

        products = [ProductSpec.from_mapping(entry) for entry in entries]
        return cls({product.id: product for product in products})

    def get(self, product_id: str) -> ProductSpec:
        try:
            return self._products[product_id]
        except KeyError as exc:
            raise KeyError(f"Unknown product size '{product_id}'.") from exc

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    def __iter__(self):
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)
