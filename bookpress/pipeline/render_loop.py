"""
Sequential illustration rendering for the approved spread plan.
"""

from __future__ import annotations

import logging
import time

from bookpress.ai_generation import (
    CharacterLock,
    IllustrationRenderer,
    StyleLock,
    cover_scene_prompt,
    spread_scene_prompt,
)
from bookpress.common import (
    CancellationToken,
    PipelineCancelled,
    PrerequisiteMissing,
    ProductionSettings,
)
from bookpress.common.retry import SleepFn
from bookpress.layout import front_cover_side
from bookpress.story_generation import Page, SpreadDirective, TextBlock

from .progress import ProgressCallback, notify
from .session import ProductionSession, RunStatus
from .workflow_log import run_logged

logger = logging.getLogger(__name__)

RENDER_STAGE = "render"
COVER_STAGE = "cover"


class ImageRenderLoop:
    """
    Renders one illustration per approved spread, strictly in order, then the cover.

    Each finished page is published to the session before the next call
    starts. Consecutive illustration calls are separated by
    ``settings.inter_call_delay_seconds``.
    """

    def __init__(
        self,
        renderer: IllustrationRenderer,
        *,
        settings: ProductionSettings | None = None,
        sleep: SleepFn = time.sleep,
        cancellation: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.renderer = renderer
        self.settings = settings or ProductionSettings()
        self._sleep = sleep
        self._cancellation = cancellation
        self._progress = progress_callback
        self._calls = 0

    def run(
        self,
        session: ProductionSession,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> list[Page]:
        """
        Render every spread and then the cover.

        On failure the pages already rendered stay on ``session``, the
        session is marked failed and the error is re-raised.
        """
        plan, prompts = self._approved_content(session)
        session.reset_render()
        session.status = RunStatus.RUNNING
        self._calls = 0
        total = len(plan)

        try:
            for directive, prompt in zip(plan, prompts):
                self._check_cancelled(session, directive.spread_number)
                page = self._render_spread(session, directive, prompt, style_lock, character_lock)
                session.publish_page(page)
                notify(self._progress, "spread_rendered", spread=page.page_number, total=total)

            self._check_cancelled(session, None)
            session.cover_illustration = self._render_cover(session, style_lock, character_lock)
            notify(self._progress, "cover_rendered", total=total)
        except PipelineCancelled:
            session.status = RunStatus.CANCELLED
            raise
        except Exception as exc:
            session.mark_failed(exc)
            logger.error(
                "Render loop stopped after %d of %d spread(s): %s", len(session.pages), total, exc
            )
            raise

        logger.info("Rendered %d spread(s) and the cover for order %s", total, session.order_id)
        return list(session.pages)

    def regenerate_spread(
        self,
        session: ProductionSession,
        spread_number: int,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> Page:
        """
        Render one spread again and replace only that page's illustration.
        """
        existing = session.page(spread_number)
        illustration = self._call_renderer(
            session,
            existing.prompt,
            style_lock,
            character_lock,
            stage=RENDER_STAGE,
            spread=spread_number,
        )
        page = existing.with_illustration(illustration)
        session.replace_page(page)
        notify(self._progress, "spread_regenerated", spread=spread_number)
        return page

    def regenerate_cover(
        self,
        session: ProductionSession,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> bytes:
        if session.blueprint is None:
            raise PrerequisiteMissing("Cover needs the approved story skeleton.", stage=COVER_STAGE)
        session.cover_illustration = self._render_cover(session, style_lock, character_lock)
        session.stitched = None
        return session.cover_illustration

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def _approved_content(session: ProductionSession) -> tuple[tuple[SpreadDirective, ...], list[str]]:
        plan = session.spread_plan
        prompts = session.prompts
        if session.blueprint is None:
            raise PrerequisiteMissing("Rendering needs the approved story skeleton.", stage=RENDER_STAGE)
        if plan is None or not len(plan):
            raise PrerequisiteMissing("Rendering needs an approved spread plan.", stage=RENDER_STAGE)
        if prompts is None:
            raise PrerequisiteMissing("Rendering needs the audited illustration prompts.", stage=RENDER_STAGE)
        if len(prompts) != len(plan):
            raise PrerequisiteMissing(
                f"Spread plan has {len(plan)} spreads but {len(prompts)} prompts were approved.",
                stage=RENDER_STAGE,
            )
        return plan.spreads, prompts

    def _render_spread(
        self,
        session: ProductionSession,
        directive: SpreadDirective,
        prompt: str,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> Page:
        number = directive.spread_number
        scene = spread_scene_prompt(prompt, directive)
        illustration = self._call_renderer(
            session, scene, style_lock, character_lock, stage=RENDER_STAGE, spread=number
        )

        text = session.blueprint.narrative_for(number)
        text_side = directive.text_side
        direction = session.request.writing_direction
        paragraphs = [block.strip() for block in text.split("\n\n") if block.strip()]
        return Page(
            page_number=number,
            text=text,
            illustration=illustration,
            main_content_side=directive.main_content_side,
            text_side=text_side,
            text_blocks=tuple(TextBlock.for_side(paragraph, text_side, direction) for paragraph in paragraphs),
            prompt=scene,
        )

    def _render_cover(
        self,
        session: ProductionSession,
        style_lock: StyleLock,
        character_lock: CharacterLock,
    ) -> bytes:
        blueprint = session.blueprint
        prompt = cover_scene_prompt(
            blueprint.setting,
            front_cover_side(session.request.writing_direction),
            title=session.display_title(),
        )
        return self._call_renderer(session, prompt, style_lock, character_lock, stage=COVER_STAGE)

    def _call_renderer(
        self,
        session: ProductionSession,
        prompt: str,
        style_lock: StyleLock,
        character_lock: CharacterLock,
        *,
        stage: str,
        spread: int | None = None,
    ) -> bytes:
        if self._calls and self.settings.inter_call_delay_seconds > 0:
            self._sleep(self.settings.inter_call_delay_seconds)
        self._calls += 1

        age = session.request.child_age
        return run_logged(
            lambda: self.renderer.render_illustration(prompt, style_lock, character_lock, age),
            log=session.log,
            stage=stage,
            inputs={"prompt": prompt, "age": age, "style": style_lock.description},
            settings=self.settings,
            sleep=self._sleep,
            spread=spread,
        )

    def _check_cancelled(self, session: ProductionSession, spread: int | None) -> None:
        if self._cancellation is not None:
            self._cancellation.raise_if_cancelled(stage=RENDER_STAGE, spread=spread)
