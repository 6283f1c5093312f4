"""
Plain-text and JSON manifests bundled with a production package.

The text manifest is a ``Key: value`` header, a ``---`` separator line and
one ``Page N:`` block per spread::

    Order Number: RWY-ABC123
    Book Title: Maya's Moon Garden
    ...

    ---

    Page 1:
    Once upon a time...

A body line that would read as a page header, or that starts with a
backslash, is written with one extra leading backslash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bookpress.pipeline.session import ProductionSession

SEPARATOR = "---"
_PAGE_HEADER = re.compile(r"^Page\s+(\d+):\s*$")
ESCAPE = "\\"


@dataclass(frozen=True)
class ManifestData:
    """Parsed text manifest."""

    fields: dict[str, str] = field(default_factory=dict)
    pages: dict[int, str] = field(default_factory=dict)

    @property
    def order_id(self) -> str | None:
        return self.fields.get("Order Number")

    @property
    def title(self) -> str | None:
        return self.fields.get("Book Title")

    @property
    def child_name(self) -> str | None:
        return self.fields.get("Child Name")

    @property
    def language(self) -> str | None:
        return self.fields.get("Language")

    @property
    def size_id(self) -> str | None:
        return self.fields.get("Size Id")

    @property
    def child_age(self) -> int | None:
        value = self.fields.get("Child Age")
        return int(value) if value and value.isdigit() else None


def manifest_fields(session: "ProductionSession") -> dict[str, str]:
    request = session.request
    product = session.product
    values = {
        "Order Number": session.order_id,
        "Customer Name": request.customer_name or "",
        "Customer Phone": request.customer_phone or "",
        "Book Title": session.display_title(),
        "Child Name": request.child_name,
        "Child Age": "" if request.child_age is None else str(request.child_age),
        "Language": request.language,
        "Writing Direction": request.writing_direction.value,
        "Book Size": product.name if product else (request.size_id or ""),
        "Size Id": product.id if product else (request.size_id or ""),
        "Spreads": str(len(session.pages)),
    }
    return {key: " ".join(value.split()) for key, value in values.items()}


def build_manifest_text(session: "ProductionSession") -> str:
    lines = [f"{key}: {value}" for key, value in manifest_fields(session).items()]
    lines += ["", SEPARATOR, ""]
    for page in session.pages:
        lines.append(f"Page {page.page_number}:")
        lines.extend(_escape_line(line) for line in page.text.strip().splitlines())
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


def build_manifest_json(session: "ProductionSession") -> dict[str, Any]:
    """Structured sibling of the text manifest, for auditing."""
    blueprint = session.blueprint
    plan = session.spread_plan
    return {
        "order": manifest_fields(session),
        "request": session.request.to_dict(),
        "product": session.product.to_dict() if session.product else None,
        "style_guide": session.style_guide,
        "blueprint": blueprint.to_dict() if blueprint else None,
        "spread_plan": plan.to_dict() if plan else None,
        "prompts": list(session.prompts or []),
        "pages": [page.to_dict() for page in session.pages],
        "workflow_log": session.log.to_list(),
    }


def parse_manifest_text(text: str) -> ManifestData:
    """
    Parse a text manifest back into header fields and page texts.

    Raises
    ------
    ValueError
        When the header is malformed or a page number repeats.
    """
    header, separator, body = text.partition(f"\n{SEPARATOR}\n")
    if not separator:
        header, body = text, ""

    fields: dict[str, str] = {}
    for raw_line in header.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        key, colon, value = line.partition(":")
        if not colon:
            raise ValueError(f"Malformed manifest header line: {raw_line!r}")
        fields[key.strip()] = value.strip()

    pages: dict[int, str] = {}
    current: int | None = None
    buffer: list[str] = []
    for raw_line in body.splitlines():
        match = _PAGE_HEADER.match(raw_line.strip())
        if match:
            if current is not None:
                pages[current] = "\n".join(buffer).strip()
            current = int(match.group(1))
            if current in pages:
                raise ValueError(f"Page {current} appears twice in the manifest.")
            buffer = []
        elif current is not None:
            buffer.append(raw_line[1:] if raw_line.startswith(ESCAPE) else raw_line)
    if current is not None:
        pages[current] = "\n".join(buffer).strip()

    return ManifestData(fields=fields, pages=dict(sorted(pages.items())))


def _escape_line(line: str) -> str:
    if line.startswith(ESCAPE) or _PAGE_HEADER.match(line.strip()):
        return ESCAPE + line
    return line
