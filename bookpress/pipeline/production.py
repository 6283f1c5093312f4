"""
End-to-end production: stages, rendering, print layout, document and package.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from io import BytesIO

from PIL import Image

from bookpress.ai_generation import CharacterLock, IllustrationRenderer, StyleLock
from bookpress.catalog import ProductSpec
from bookpress.common import (
    CancellationToken,
    PipelineCancelled,
    PrerequisiteMissing,
    ProductionError,
    ProductionSettings,
)
from bookpress.common.retry import SleepFn
from bookpress.layout import PrintLayoutEngine
from bookpress.packaging import ProductionPackage, ProductionPackager
from bookpress.pdf_generation import PrintDocumentBuilder
from bookpress.story_generation import Page, StoryGenerationService, StoryRequest

from .orchestrator import OrchestratorState, StageOrchestrator
from .progress import ProgressCallback, notify
from .render_loop import ImageRenderLoop
from .session import ProductionSession, RunStatus, StitchedResult

logger = logging.getLogger(__name__)


class BookProductionPipeline:
    """
    High-level coordinator that chains content generation, rendering and print production.

    Parameters
    ----------
    story_service:
        Text-generation collaborator driving the stages.
    renderer:
        Illustration collaborator used by the render loop.
    settings:
        Production knobs; defaults to :class:`ProductionSettings`.
    sleep:
        Used for the inter-call delay and retry backoff.
    cancellation:
        Checked between stages, spreads and layout steps.
    progress_callback:
        Receives ``(stage, payload)`` progress events.
    """

    def __init__(
        self,
        *,
        story_service: StoryGenerationService,
        renderer: IllustrationRenderer,
        settings: ProductionSettings | None = None,
        layout_engine: PrintLayoutEngine | None = None,
        packager: ProductionPackager | None = None,
        sleep: SleepFn = time.sleep,
        cancellation: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.settings = settings or ProductionSettings()
        self.story_service = story_service
        self.render_loop = ImageRenderLoop(
            renderer,
            settings=self.settings,
            sleep=sleep,
            cancellation=cancellation,
            progress_callback=progress_callback,
        )
        self.layout_engine = layout_engine or PrintLayoutEngine(self.settings)
        self.packager = packager or ProductionPackager(self.settings)
        self._sleep = sleep
        self._cancellation = cancellation
        self._progress = progress_callback

    def create_session(
        self,
        request: StoryRequest,
        product: ProductSpec,
        *,
        order_id: str,
        style_guide: str = "",
        subtitle: str | None = None,
    ) -> ProductionSession:
        if request.spread_count is None:
            request = _with_spread_count(request, self.settings.default_spread_count)
        return ProductionSession(
            order_id=order_id,
            request=request,
            product=product,
            style_guide=style_guide,
            subtitle=subtitle,
        )

    def orchestrator(self, session: ProductionSession) -> StageOrchestrator:
        return StageOrchestrator(
            self.story_service,
            session,
            settings=self.settings,
            sleep=self._sleep,
            cancellation=self._cancellation,
            progress_callback=self._progress,
        )

    def generate_content(self, session: ProductionSession) -> StageOrchestrator:
        """
        Run every generation stage, auto-approving each result.

        Raises the failing stage's error when a stage does not succeed.
        """
        orchestrator = self.orchestrator(session)
        state = orchestrator.run_to_completion()
        if state is not OrchestratorState.SUCCEEDED or orchestrator.last_error is not None:
            raise orchestrator.last_error or ProductionError(
                "Content generation did not complete.", stage=orchestrator.current_stage.name
            )
        return orchestrator

    def render(
        self,
        session: ProductionSession,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> list[Page]:
        return self.render_loop.run(session, style_lock, character_lock)

    def stitch(self, session: ProductionSession) -> StitchedResult:
        return stitch_session(
            session,
            settings=self.settings,
            layout_engine=self.layout_engine,
            cancellation=self._cancellation,
            progress_callback=self._progress,
        )

    def package(self, session: ProductionSession) -> ProductionPackage:
        return self.packager.package(session)

    def produce(
        self,
        session: ProductionSession,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> ProductionPackage:
        """
        Run the whole pipeline on ``session`` and return the production archive.

        Failures mark the session failed and propagate; everything produced
        before the failure stays on the session.
        """
        try:
            self.generate_content(session)
            self.render(session, style_lock, character_lock)
            self.stitch(session)
            production_package = self.package(session)
        except PipelineCancelled:
            session.status = RunStatus.CANCELLED
            logger.warning("Production of order %s was cancelled.", session.order_id)
            raise
        except ProductionError as exc:
            session.mark_failed(exc)
            logger.error("Production of order %s failed: %s", session.order_id, exc)
            raise

        session.status = RunStatus.SUCCEEDED
        logger.info("Order %s produced: %s", session.order_id, production_package.filename)
        return production_package


def stitch_session(
    session: ProductionSession,
    *,
    settings: ProductionSettings | None = None,
    layout_engine: PrintLayoutEngine | None = None,
    cancellation: CancellationToken | None = None,
    progress_callback: ProgressCallback | None = None,
) -> StitchedResult:
    """
    Lay out the cover and every spread, then assemble the print document.

    Raises
    ------
    PrerequisiteMissing
        When the order id, product, cover or any spread illustration is missing.
    """
    settings = settings or ProductionSettings()
    engine = layout_engine or PrintLayoutEngine(settings)
    _require_stitch_inputs(session)
    product = session.product
    direction = session.request.writing_direction
    title = session.display_title()
    total = len(session.pages)

    notify(progress_callback, "layout_started", total=total)
    cover = engine.layout_cover(
        session.cover_illustration,
        product,
        session.order_id,
        title,
        direction,
        subtitle=session.subtitle,
    )
    cover_jpeg = _encode_jpeg(cover, settings.jpeg_quality, settings.dpi)

    spreads: list[bytes] = []
    for page in session.pages:
        if cancellation is not None:
            cancellation.raise_if_cancelled(stage="layout", spread=page.page_number)
        composed = engine.layout_spread(
            page.illustration,
            page,
            product,
            page.page_number,
            session.order_id,
            direction,
            age=session.request.child_age,
        )
        spreads.append(_encode_jpeg(composed, settings.jpeg_quality, settings.dpi))
        notify(progress_callback, "spread_composed", spread=page.page_number, total=total)

    document = PrintDocumentBuilder(
        metadata_strip_width_cm=settings.metadata_strip_width_cm,
        title=title,
    ).build(cover_jpeg, spreads, product)

    result = StitchedResult(
        order_id=session.order_id,
        cover=cover_jpeg,
        spreads=tuple(spreads),
        document=document,
    )
    session.stitched = result
    notify(progress_callback, "layout_finished", total=total)
    return result


def _require_stitch_inputs(session: ProductionSession) -> None:
    missing: list[str] = []
    if not session.order_id:
        missing.append("order id")
    if session.product is None:
        missing.append("product spec")
    if session.cover_illustration is None:
        missing.append("cover illustration")
    if not session.pages:
        missing.append("spread illustrations")
    plan = session.spread_plan
    if plan is not None and session.pages and len(session.pages) != len(plan):
        missing.append(f"{len(plan) - len(session.pages)} spread illustration(s)")
    if missing:
        logger.error("Cannot stitch order %s: missing %s", session.order_id, ", ".join(missing))
        raise PrerequisiteMissing(f"Cannot stitch without: {', '.join(missing)}.", stage="layout")


def _encode_jpeg(image: Image.Image, quality: int, dpi: int) -> bytes:
    buffer = BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality, dpi=(dpi, dpi))
    return buffer.getvalue()


def _with_spread_count(request: StoryRequest, spread_count: int) -> StoryRequest:
    return replace(request, spread_count=spread_count)
