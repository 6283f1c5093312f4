"""
Progress reporting hook shared by the pipeline components.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

ProgressCallback = Callable[[str, Mapping[str, Any]], None]


def notify(callback: ProgressCallback | None, event: str, /, **payload: Any) -> None:
    if callback is not None:
        callback(event, payload)
