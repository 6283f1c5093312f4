"""
Sequencing of the dependent content-generation stages.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

from bookpress.common import (
    CancellationToken,
    GenerationError,
    PipelineCancelled,
    PrerequisiteMissing,
    ProductionError,
    ProductionSettings,
    StageTransitionError,
)
from bookpress.common.retry import SleepFn
from bookpress.story_generation import StoryGenerationService

from .progress import ProgressCallback, notify
from .session import ProductionSession, RunStatus
from .workflow_log import run_logged

logger = logging.getLogger(__name__)

REQUEST = "request"


@dataclass(frozen=True)
class Stage:
    """
    One generation stage: the artifacts it needs, how to call the
    collaborator, and what it stores under ``name``.
    """

    name: str
    label: str
    requires: tuple[str, ...]
    run: Callable[[StoryGenerationService, ProductionSession], Any]

    def inputs(self, session: ProductionSession) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key in self.requires:
            values[key] = session.request if key == REQUEST else session.artifacts.get(key)
        if self.name == "prompts":
            values["style_guide"] = session.style_guide
        return values


STAGES: tuple[Stage, ...] = (
    Stage(
        "skeleton",
        "Story DNA",
        (REQUEST,),
        lambda service, session: service.synthesize_skeleton(session.request),
    ),
    Stage(
        "narrative",
        "Plot audit",
        ("skeleton",),
        lambda service, session: service.audit_skeleton(session.artifacts["skeleton"]),
    ),
    Stage(
        "visual_plan",
        "Visual director",
        ("narrative",),
        lambda service, session: service.plan_visuals(session.artifacts["narrative"]),
    ),
    Stage(
        "visual_audit",
        "Creative director",
        ("visual_plan",),
        lambda service, session: service.audit_visuals(session.artifacts["visual_plan"]),
    ),
    Stage(
        "prompts",
        "Prompt engineer",
        ("visual_audit",),
        lambda service, session: service.synthesize_prompts(
            session.artifacts["visual_audit"], session.style_guide
        ),
    ),
    Stage(
        "prompt_audit",
        "Quality pass",
        ("prompts",),
        lambda service, session: service.audit_prompts(session.artifacts["prompts"]),
    ),
)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageOrchestrator:
    """
    State machine over :data:`STAGES`.

    ``current_stage_index`` is 1-based. Generation failures leave the
    orchestrator in ``FAILED`` with ``last_error`` set; they are never raised
    from the navigation methods. Calling a navigation method the current
    state forbids raises :class:`StageTransitionError`, and a missing
    prerequisite raises :class:`PrerequisiteMissing` before anything changes.

    Parameters
    ----------
    service:
        Text-generation collaborator.
    session:
        Caller-owned session; stage artifacts are stored on it by stage name.
    settings:
        Retry budget and backoff.
    sleep:
        Used for retry backoff.
    cancellation:
        Checked before every stage.
    progress_callback:
        Receives ``stage_started`` / ``stage_succeeded`` / ``stage_failed``.
    """

    def __init__(
        self,
        service: StoryGenerationService,
        session: ProductionSession,
        *,
        settings: ProductionSettings | None = None,
        sleep: SleepFn = time.sleep,
        cancellation: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
        stages: Sequence[Stage] = STAGES,
    ) -> None:
        if not stages:
            raise ValueError("At least one stage is required.")
        self.service = service
        self.session = session
        self.settings = settings or ProductionSettings()
        self.stages = tuple(stages)
        self._sleep = sleep
        self._cancellation = cancellation
        self._progress = progress_callback
        self._index = 1
        self._state = OrchestratorState.IDLE
        self._last_error: ProductionError | None = None

    # ------------------------------------------------------------------ state

    @property
    def current_stage_index(self) -> int:
        return self._index

    @property
    def current_stage(self) -> Stage:
        return self.stages[self._index - 1]

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is OrchestratorState.RUNNING

    @property
    def is_complete(self) -> bool:
        return self._state is OrchestratorState.SUCCEEDED and self._index == len(self.stages)

    @property
    def last_error(self) -> ProductionError | None:
        return self._last_error

    @property
    def artifacts(self) -> dict[str, Any]:
        return self.session.artifacts

    # ------------------------------------------------------------------ navigation

    def start(self) -> OrchestratorState:
        """Reset to the first stage and run it."""
        self._require_not_running("start")
        return self._execute(1)

    def advance(self) -> OrchestratorState:
        """Approve the current stage's artifact and run the next stage."""
        self._require_not_running("advance")
        if self._state is not OrchestratorState.SUCCEEDED:
            raise StageTransitionError(
                f"advance() requires a succeeded stage; current state is {self._state.value}.",
                stage=self.current_stage.name,
            )
        if self._index >= len(self.stages):
            raise StageTransitionError("Already at the last stage.", stage=self.current_stage.name)
        return self._execute(self._index + 1)

    def retreat(self) -> OrchestratorState:
        """Go back one stage and generate it again."""
        self._require_not_running("retreat")
        if self._state not in (OrchestratorState.SUCCEEDED, OrchestratorState.FAILED):
            raise StageTransitionError("retreat() requires a finished stage.")
        if self._index <= 1:
            raise StageTransitionError("Cannot retreat from the first stage.", stage=self.current_stage.name)
        return self._execute(self._index - 1)

    def retry(self) -> OrchestratorState:
        """Run the current stage again without moving."""
        self._require_not_running("retry")
        if self._state is OrchestratorState.IDLE:
            raise StageTransitionError("retry() requires a stage to have run; call start() first.")
        return self._execute(self._index)

    def run_to_completion(self) -> OrchestratorState:
        """
        Start if needed, then advance until the last stage succeeds or a stage fails.
        """
        if self._state is OrchestratorState.IDLE:
            self.start()
        while self._state is OrchestratorState.SUCCEEDED and self._index < len(self.stages):
            self.advance()
        return self._state

    # ------------------------------------------------------------------ execution

    def _execute(self, index: int) -> OrchestratorState:
        # Cancellation and prerequisites are checked before the index moves.
        stage = self.stages[index - 1]
        if self._cancellation is not None:
            try:
                self._cancellation.raise_if_cancelled(stage=stage.name)
            except PipelineCancelled:
                self.session.status = RunStatus.CANCELLED
                raise
        self._check_prerequisites(stage)

        self._index = index
        self._discard_from(index)
        self._state = OrchestratorState.RUNNING
        self._last_error = None
        self.session.status = RunStatus.RUNNING
        notify(self._progress, "stage_started", stage=stage.name, index=index, total=len(self.stages))
        logger.info("Running stage %d/%d: %s", index, len(self.stages), stage.label)

        try:
            artifact = run_logged(
                lambda: stage.run(self.service, self.session),
                log=self.session.log,
                stage=stage.name,
                inputs=stage.inputs(self.session),
                settings=self.settings,
                sleep=self._sleep,
            )
        except GenerationError as exc:
            self._fail(stage, exc)
            return self._state
        except ProductionError as exc:
            self._fail(stage, exc)
            raise

        self.session.artifacts[stage.name] = artifact
        self.session.last_error = None
        self._state = OrchestratorState.SUCCEEDED
        if self.is_complete:
            self.session.status = RunStatus.SUCCEEDED
        notify(self._progress, "stage_succeeded", stage=stage.name, index=index, total=len(self.stages))
        return self._state

    def _fail(self, stage: Stage, exc: ProductionError) -> None:
        self._state = OrchestratorState.FAILED
        self._last_error = exc
        self.session.mark_failed(exc)
        logger.error("Stage %s failed: %s", stage.name, exc.message)
        notify(self._progress, "stage_failed", stage=stage.name, error=exc.describe())

    def _check_prerequisites(self, stage: Stage) -> None:
        for key in stage.requires:
            if key == REQUEST:
                present = self.session.request is not None
            else:
                present = self.session.artifacts.get(key) is not None
            if not present:
                logger.error("Stage %s is missing prerequisite %s", stage.name, key)
                raise PrerequisiteMissing(
                    f"Stage '{stage.name}' requires '{key}', which has not been produced.",
                    stage=stage.name,
                )

    def _discard_from(self, index: int) -> None:
        for stage in self.stages[index - 1:]:
            self.session.artifacts.pop(stage.name, None)
        self.session.reset_render()

    def _require_not_running(self, action: str) -> None:
        if self._state is OrchestratorState.RUNNING:
            raise StageTransitionError(f"Cannot {action}() while a stage is running.")
