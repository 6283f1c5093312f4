"""
Error taxonomy shared by every stage of book production.
"""

from __future__ import annotations


class ProductionError(Exception):
    """
    Base class for production failures.

    ``stage`` and ``spread`` identify where the failure happened so callers can
    surface it without parsing the message.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        spread: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.spread = spread

    def with_context(
        self,
        *,
        stage: str | None = None,
        spread: int | None = None,
    ) -> "ProductionError":
        if stage is not None and self.stage is None:
            self.stage = stage
        if spread is not None and self.spread is None:
            self.spread = spread
        return self

    def describe(self) -> str:
        parts: list[str] = []
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.spread is not None:
            parts.append(f"spread={self.spread}")
        location = f" [{', '.join(parts)}]" if parts else ""
        return f"{type(self).__name__}{location}: {self.message}"

    def __str__(self) -> str:
        return self.describe()


class PrerequisiteMissing(ProductionError):
    """A stage or layout step ran before the artifact it depends on existed."""


class StageTransitionError(ProductionError):
    """The orchestrator was asked for a transition its current state forbids."""


class GenerationError(ProductionError):
    """Failure reported by the generative collaborator."""


class TransientGenerationError(GenerationError):
    """Network or rate-limit failure. Safe to retry."""


class PermanentGenerationError(GenerationError):
    """Malformed output or explicit rejection. Never retried."""


class CompositingFailure(ProductionError):
    """The compositing surface could not flatten an image."""


class PackagingFailure(ProductionError):
    """The production archive could not be assembled."""


class PipelineCancelled(ProductionError):
    """The caller cancelled the run between two units of work."""


class InvalidProductSpec(ValueError):
    """Product geometry is malformed (missing, zero or negative dimensions)."""
