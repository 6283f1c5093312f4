"""
Bundles a finished production run into one downloadable ZIP archive.
"""

from __future__ import annotations

import json
import logging
import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING

from bookpress.common import PackagingFailure, PrerequisiteMissing, ProductionSettings
from bookpress.layout import image_extension

from .manifest import build_manifest_json, build_manifest_text

if TYPE_CHECKING:
    from bookpress.pipeline.session import ProductionSession

logger = logging.getLogger(__name__)

RAW_DIR = "raw_illustrations"
COMPOSED_DIR = "composed"
LOGS_DIR = "workflow_logs"
DOCUMENT_NAME = "full_book.pdf"


@dataclass(frozen=True)
class ProductionPackage:
    filename: str
    data: bytes

    def write_to(self, directory: str | Path) -> Path:
        target = Path(directory)
        target.mkdir(parents=True, exist_ok=True)
        path = target / self.filename
        path.write_bytes(self.data)
        return path

    def names(self) -> list[str]:
        with zipfile.ZipFile(BytesIO(self.data)) as archive:
            return archive.namelist()


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("_") or "order"


class ProductionPackager:
    """
    Aggregates what the run produced; nothing is re-derived here.

    Archive layout::

        manifest.txt
        manifest.json
        full_book.pdf
        raw_illustrations/00_cover.png, spread_01.png, ...
        composed/00_cover_stitched.jpg, spread_01.jpg, ...
        workflow_logs/01_skeleton.json, ...
    """

    def __init__(self, settings: ProductionSettings | None = None, *, include_workflow_logs: bool = True) -> None:
        self.settings = settings or ProductionSettings()
        self.include_workflow_logs = include_workflow_logs

    def archive_name(self, order_id: str) -> str:
        brand = _safe_name(self.settings.brand_name.title())
        return f"{_safe_name(order_id)}_{brand}_Production.zip"

    def package(self, session: "ProductionSession") -> ProductionPackage:
        stitched = session.stitched
        if stitched is None:
            raise PrerequisiteMissing("Nothing to package: the book has not been stitched.", stage="packaging")
        if session.cover_illustration is None:
            raise PrerequisiteMissing("Nothing to package: the cover illustration is missing.", stage="packaging")

        buffer = BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
                archive.writestr("manifest.txt", build_manifest_text(session))
                archive.writestr(
                    "manifest.json",
                    json.dumps(build_manifest_json(session), ensure_ascii=False, indent=2),
                )
                archive.writestr(DOCUMENT_NAME, stitched.document)

                cover_raw = session.cover_illustration
                archive.writestr(f"{RAW_DIR}/00_cover{image_extension(cover_raw)}", cover_raw)
                for page in session.pages:
                    name = f"spread_{page.page_number:02d}{image_extension(page.illustration)}"
                    archive.writestr(f"{RAW_DIR}/{name}", page.illustration)

                archive.writestr(f"{COMPOSED_DIR}/00_cover_stitched.jpg", stitched.cover)
                for number, spread in enumerate(stitched.spreads, start=1):
                    archive.writestr(f"{COMPOSED_DIR}/spread_{number:02d}.jpg", spread)

                if self.include_workflow_logs:
                    for index, entry in enumerate(session.log.entries, start=1):
                        label = entry.stage if entry.spread is None else f"{entry.stage}_spread_{entry.spread:02d}"
                        archive.writestr(
                            f"{LOGS_DIR}/{index:02d}_{label}.json",
                            json.dumps(entry.to_dict(), ensure_ascii=False, indent=2),
                        )
        except (OSError, ValueError, TypeError, zipfile.BadZipFile) as exc:
            logger.error("Packaging order %s failed: %s", session.order_id, exc)
            raise PackagingFailure(f"Could not build the production archive: {exc}", stage="packaging") from exc

        filename = self.archive_name(session.order_id)
        logger.info("Packaged order %s into %s", session.order_id, filename)
        return ProductionPackage(filename=filename, data=buffer.getvalue())
