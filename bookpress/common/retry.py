"""
Bounded retry loop for calls into the generative collaborator.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from .errors import TransientGenerationError

T = TypeVar("T")

SleepFn = Callable[[float], None]
AttemptFailureHook = Callable[[int, TransientGenerationError], None]

logger = logging.getLogger(__name__)


def call_with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_seconds: float = 1.0,
    sleep: SleepFn = time.sleep,
    on_failure: AttemptFailureHook | None = None,
    label: str = "generation call",
) -> T:
    """
    Run ``operation`` at most ``attempts`` times.

    Only :class:`TransientGenerationError` is retried, with a fixed
    ``backoff_seconds`` pause between attempts. Any other exception propagates
    immediately. When the budget is exhausted the last transient error is
    re-raised. ``on_failure`` is told about every failed transient attempt
    (1-based attempt number), including the last one.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1.")

    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except TransientGenerationError as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if attempt >= attempts:
                logger.error(
                    "%s failed after %d attempt(s): %s", label, attempt, exc.message
                )
                raise
            logger.warning(
                "%s failed on attempt %d/%d, retrying in %.1fs: %s",
                label,
                attempt,
                attempts,
                backoff_seconds,
                exc.message,
            )
            if backoff_seconds > 0:
                sleep(backoff_seconds)
