"""
Common utilities shared across bookpress modules.
"""

from .cancellation import CancellationToken
from .errors import (
    CompositingFailure,
    GenerationError,
    InvalidProductSpec,
    PackagingFailure,
    PermanentGenerationError,
    PipelineCancelled,
    PrerequisiteMissing,
    ProductionError,
    StageTransitionError,
    TransientGenerationError,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion, parse_json_payload
from .retry import call_with_retry
from .settings import ProductionSettings, load_settings

__all__ = [
    "CancellationToken",
    "ChatResult",
    "CompletionCallable",
    "CompositingFailure",
    "GenerationError",
    "InvalidProductSpec",
    "PackagingFailure",
    "PermanentGenerationError",
    "PipelineCancelled",
    "PrerequisiteMissing",
    "ProductionError",
    "ProductionSettings",
    "StageTransitionError",
    "TransientGenerationError",
    "call_chat_completion",
    "call_with_retry",
    "load_settings",
    "parse_json_payload",
]
