"""
Caller-owned state of one production run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from bookpress.catalog import ProductSpec
from bookpress.common import PrerequisiteMissing, ProductionError
from bookpress.layout import image_extension
from bookpress.story_generation import Blueprint, Page, SpreadPlan, StoryRequest

from .workflow_log import WorkflowLog, WorkflowLogEntry

logger = logging.getLogger(__name__)

SESSION_FILENAME = "session.yaml"
RAW_DIRNAME = "raw_illustrations"

_BLUEPRINT_STAGES = ("skeleton", "narrative")
_PLAN_STAGES = ("visual_plan", "visual_audit")
_PROMPT_STAGES = ("prompts", "prompt_audit")


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StitchedResult:
    """
    Terminal artifact set: JPEG-encoded composed cover and spreads plus the
    assembled PDF.
    """

    order_id: str
    cover: bytes
    spreads: tuple[bytes, ...]
    document: bytes

    def __post_init__(self) -> None:
        missing = [
            name
            for name, value in (
                ("order id", self.order_id),
                ("composed cover", self.cover),
                ("composed spreads", self.spreads),
                ("document", self.document),
            )
            if not value
        ]
        if missing:
            raise PrerequisiteMissing(f"Cannot build stitched result without: {', '.join(missing)}.")
        if any(not spread for spread in self.spreads):
            raise PrerequisiteMissing("Every composed spread must be present.")

    @property
    def spread_count(self) -> int:
        return len(self.spreads)


@dataclass
class ProductionSession:
    """
    Everything a production run accumulates.

    The session is passed by reference into the orchestrator, the render loop
    and the stitching step; they only ever append pages and log entries or
    store stage artifacts on it.
    """

    order_id: str
    request: StoryRequest
    product: ProductSpec | None = None
    style_guide: str = ""
    subtitle: str | None = None
    artifacts: dict[str, Any] = field(default_factory=dict)
    pages: list[Page] = field(default_factory=list)
    cover_illustration: bytes | None = None
    log: WorkflowLog = field(default_factory=WorkflowLog)
    status: RunStatus = RunStatus.IDLE
    last_error: str | None = None
    stitched: StitchedResult | None = None

    # ------------------------------------------------------------------ approved artifacts

    @property
    def blueprint(self) -> Blueprint | None:
        return self._latest(_BLUEPRINT_STAGES)

    @property
    def spread_plan(self) -> SpreadPlan | None:
        return self._latest(_PLAN_STAGES)

    @property
    def prompts(self) -> list[str] | None:
        return self._latest(_PROMPT_STAGES)

    def display_title(self) -> str:
        blueprint = self.blueprint
        return self.request.display_title(blueprint.title if blueprint else None)

    def _latest(self, stages: tuple[str, ...]) -> Any:
        for stage in reversed(stages):
            if self.artifacts.get(stage) is not None:
                return self.artifacts[stage]
        return None

    # ------------------------------------------------------------------ pages

    def publish_page(self, page: Page) -> None:
        expected = len(self.pages) + 1
        if page.page_number != expected:
            raise ValueError(f"Pages must be published in order; expected {expected}, got {page.page_number}.")
        self.pages.append(page)

    def replace_page(self, page: Page) -> None:
        for index, existing in enumerate(self.pages):
            if existing.page_number == page.page_number:
                self.pages[index] = page
                self.stitched = None
                return
        raise PrerequisiteMissing(f"No page {page.page_number} to replace.", spread=page.page_number)

    def page(self, page_number: int) -> Page:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        raise PrerequisiteMissing(f"Spread {page_number} has not been rendered.", spread=page_number)

    def reset_render(self) -> None:
        self.pages.clear()
        self.cover_illustration = None
        self.stitched = None

    def mark_failed(self, error: BaseException) -> None:
        self.status = RunStatus.FAILED
        self.last_error = error.describe() if isinstance(error, ProductionError) else str(error)

    # ------------------------------------------------------------------ persistence

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "last_error": self.last_error,
            "style_guide": self.style_guide,
            "subtitle": self.subtitle,
            "request": self.request.to_dict(),
            "product": self.product.to_dict() if self.product else None,
            "artifacts": {stage: _artifact_to_data(value) for stage, value in self.artifacts.items()},
            "pages": [page.to_dict() for page in self.pages],
            "workflow_log": self.log.to_list(),
        }

    def save(self, directory: str | Path) -> Path:
        """
        Write a YAML snapshot plus the raw illustration files to ``directory``.
        """
        target = Path(directory)
        raw_dir = target / RAW_DIRNAME
        raw_dir.mkdir(parents=True, exist_ok=True)

        payload = self.to_dict()
        for page_data, page in zip(payload["pages"], self.pages):
            name = f"spread_{page.page_number:02d}{image_extension(page.illustration)}"
            (raw_dir / name).write_bytes(page.illustration)
            page_data["illustration"] = f"{RAW_DIRNAME}/{name}"

        if self.cover_illustration is not None:
            name = f"cover{image_extension(self.cover_illustration)}"
            (raw_dir / name).write_bytes(self.cover_illustration)
            payload["cover_illustration"] = f"{RAW_DIRNAME}/{name}"

        session_file = target / SESSION_FILENAME
        session_file.write_text(
            yaml.safe_dump(payload, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        logger.info("Saved session %s to %s", self.order_id, session_file)
        return session_file

    @classmethod
    def load(cls, directory: str | Path) -> "ProductionSession":
        source = Path(directory)
        data = yaml.safe_load((source / SESSION_FILENAME).read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("Session YAML must deserialize to a mapping.")

        pages = [
            Page.from_mapping(item, (source / item["illustration"]).read_bytes())
            for item in data.get("pages") or ()
        ]
        cover_path = data.get("cover_illustration")
        product_data = data.get("product")
        return cls(
            order_id=str(data["order_id"]),
            request=StoryRequest.from_mapping(data["request"]),
            product=ProductSpec.from_mapping(product_data) if product_data else None,
            style_guide=str(data.get("style_guide") or ""),
            subtitle=data.get("subtitle"),
            artifacts={
                stage: _artifact_from_data(stage, value)
                for stage, value in (data.get("artifacts") or {}).items()
            },
            pages=pages,
            cover_illustration=(source / cover_path).read_bytes() if cover_path else None,
            log=WorkflowLog(
                [WorkflowLogEntry.from_mapping(item) for item in data.get("workflow_log") or ()]
            ),
            status=RunStatus(data.get("status") or RunStatus.IDLE.value),
            last_error=data.get("last_error"),
        )


def _artifact_to_data(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def _artifact_from_data(stage: str, value: Any) -> Any:
    if value is None:
        return None
    if stage in _BLUEPRINT_STAGES:
        return Blueprint.from_mapping(value)
    if stage in _PLAN_STAGES:
        return SpreadPlan.from_mapping(value)
    if stage in _PROMPT_STAGES:
        return [str(item) for item in value]
    return value
