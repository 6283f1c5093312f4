"""
Pipeline orchestration: stages, rendering and end-to-end production.
"""

from .orchestrator import STAGES, OrchestratorState, Stage, StageOrchestrator
from .production import BookProductionPipeline, stitch_session
from .progress import ProgressCallback
from .render_loop import ImageRenderLoop
from .session import ProductionSession, RunStatus, StitchedResult
from .workflow_log import StageStatus, WorkflowLog, WorkflowLogEntry, run_logged

__all__ = [
    "STAGES",
    "BookProductionPipeline",
    "ImageRenderLoop",
    "OrchestratorState",
    "ProductionSession",
    "ProgressCallback",
    "RunStatus",
    "Stage",
    "StageOrchestrator",
    "StageStatus",
    "StitchedResult",
    "WorkflowLog",
    "WorkflowLogEntry",
    "run_logged",
    "stitch_session",
]
