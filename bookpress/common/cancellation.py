"""
Explicit cancellation signal checked between stages and between spreads.
"""

from __future__ import annotations

import threading

from .errors import PipelineCancelled


class CancellationToken:
    """Thread-safe flag a caller can set to stop a production run early."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(
        self,
        *,
        stage: str | None = None,
        spread: int | None = None,
    ) -> None:
        if self._event.is_set():
            raise PipelineCancelled(
                self._reason or "Production run cancelled.",
                stage=stage,
                spread=spread,
            )
