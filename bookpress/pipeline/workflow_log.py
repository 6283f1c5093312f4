"""
Append-only record of every generation attempt in a production run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Sequence, TypeVar

from bookpress.common import (
    PermanentGenerationError,
    ProductionError,
    ProductionSettings,
    TransientGenerationError,
    call_with_retry,
)
from bookpress.common.retry import SleepFn

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageStatus(str, Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


def snapshot(value: Any) -> Any:
    """
    JSON-friendly copy of a stage input or output. Raw image bytes are
    summarised by size.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if hasattr(value, "to_dict"):
        return snapshot(value.to_dict())
    if is_dataclass(value):
        return {name: snapshot(getattr(value, name)) for name in value.__dataclass_fields__}
    if isinstance(value, Mapping):
        return {str(key): snapshot(item) for key, item in value.items()}
    if isinstance(value, Sequence):
        return [snapshot(item) for item in value]
    return str(value)


@dataclass(frozen=True)
class WorkflowLogEntry:
    stage: str
    timestamp: str
    status: StageStatus
    duration_ms: float
    inputs: Any = None
    outputs: Any = None
    error: str | None = None
    attempt: int = 1
    spread: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is StageStatus.SUCCEEDED

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WorkflowLogEntry":
        spread = data.get("spread")
        return cls(
            stage=str(data["stage"]),
            timestamp=str(data["timestamp"]),
            status=StageStatus(data["status"]),
            duration_ms=float(data.get("duration_ms") or 0.0),
            inputs=data.get("inputs"),
            outputs=data.get("outputs"),
            error=data.get("error"),
            attempt=int(data.get("attempt") or 1),
            spread=None if spread is None else int(spread),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "attempt": self.attempt,
            "spread": self.spread,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "error": self.error,
        }


class WorkflowLog:
    """Entries are only ever appended, in the order attempts finish."""

    def __init__(self, entries: Sequence[WorkflowLogEntry] = ()) -> None:
        self._entries: list[WorkflowLogEntry] = list(entries)

    def record_success(
        self,
        stage: str,
        *,
        inputs: Any,
        outputs: Any,
        duration_ms: float,
        attempt: int = 1,
        spread: int | None = None,
    ) -> WorkflowLogEntry:
        return self._append(
            WorkflowLogEntry(
                stage=stage,
                timestamp=_now(),
                status=StageStatus.SUCCEEDED,
                duration_ms=duration_ms,
                inputs=snapshot(inputs),
                outputs=snapshot(outputs),
                attempt=attempt,
                spread=spread,
            )
        )

    def record_failure(
        self,
        stage: str,
        *,
        inputs: Any,
        error: BaseException,
        duration_ms: float,
        attempt: int = 1,
        spread: int | None = None,
    ) -> WorkflowLogEntry:
        message = error.message if isinstance(error, ProductionError) else str(error)
        return self._append(
            WorkflowLogEntry(
                stage=stage,
                timestamp=_now(),
                status=StageStatus.FAILED,
                duration_ms=duration_ms,
                inputs=snapshot(inputs),
                error=f"{type(error).__name__}: {message}",
                attempt=attempt,
                spread=spread,
            )
        )

    def for_stage(self, stage: str) -> list[WorkflowLogEntry]:
        return [entry for entry in self._entries if entry.stage == stage]

    def for_spread(self, spread: int) -> list[WorkflowLogEntry]:
        return [entry for entry in self._entries if entry.spread == spread]

    @property
    def entries(self) -> tuple[WorkflowLogEntry, ...]:
        return tuple(self._entries)

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    def __iter__(self) -> Iterator[WorkflowLogEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def _append(self, entry: WorkflowLogEntry) -> WorkflowLogEntry:
        self._entries.append(entry)
        return entry


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_logged(
    operation: Callable[[], T],
    *,
    log: WorkflowLog,
    stage: str,
    inputs: Any,
    settings: ProductionSettings,
    sleep: SleepFn = time.sleep,
    spread: int | None = None,
) -> T:
    """
    Call ``operation`` under the retry budget and log every attempt.

    Failures are re-raised carrying ``stage`` and ``spread`` context. An
    exception outside the production taxonomy becomes a
    :class:`PermanentGenerationError` chained to the original.
    """
    attempt = 0
    started = time.perf_counter()

    def elapsed_ms() -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    def attempt_once() -> T:
        nonlocal attempt, started
        attempt += 1
        started = time.perf_counter()
        try:
            return operation()
        except ProductionError:
            raise
        except Exception as exc:
            raise PermanentGenerationError(f"{type(exc).__name__}: {exc}") from exc

    def on_failure(number: int, exc: TransientGenerationError) -> None:
        log.record_failure(
            stage, inputs=inputs, error=exc, duration_ms=elapsed_ms(), attempt=number, spread=spread
        )

    where = stage if spread is None else f"{stage} (spread {spread})"
    try:
        result = call_with_retry(
            attempt_once,
            attempts=settings.retry_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
            sleep=sleep,
            on_failure=on_failure,
            label=where,
        )
    except TransientGenerationError as exc:
        raise exc.with_context(stage=stage, spread=spread)
    except ProductionError as exc:
        log.record_failure(
            stage, inputs=inputs, error=exc, duration_ms=elapsed_ms(), attempt=attempt, spread=spread
        )
        logger.error("%s failed: %s", where, exc.message)
        raise exc.with_context(stage=stage, spread=spread)

    log.record_success(
        stage, inputs=inputs, outputs=result, duration_ms=elapsed_ms(), attempt=attempt, spread=spread
    )
    return result
