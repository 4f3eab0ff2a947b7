"""
Stage progress reporting.

Every stage emits two events: a "before" event (even tick) and an
"after" event (odd tick). The percentage of stage ``i`` out of ``total``
is ``round((2*i + done) / (2*total) * 100)``; the terminal stage reports
99 before completion and exactly 100 when done.
"""

from __future__ import annotations

import inspect
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGES = (
    "setup",
    "upload",
    "preview",
    "prediction",
    "geometry",
    "depth_estimation",
    "review",
)
TOTAL_STAGES = len(STAGES) - 1


@dataclass(frozen=True)
class ProgressEvent:
    message: str
    percentage: int
    stage: str

    def as_dict(self) -> dict:
        return {"message": self.message, "percentage": self.percentage, "stage": self.stage}


ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def report_progress(stage: int, total: int, message: str, complete: bool) -> ProgressEvent:
    """
    Build the progress event for a stage tick.

    Args:
        stage: Stage index (0-based, ``total`` is the last stage)
        total: Index of the terminal stage
        message: Human-readable status
        complete: False for the "before" tick, True for the "after" tick
    """
    if total <= 0:
        raise ValueError("total must be positive")
    percentage = _round_half_up(((stage * 2 + (1 if complete else 0)) / (total * 2)) * 100)
    if stage == total:
        percentage = 100 if complete else 99
    return ProgressEvent(message=message, percentage=percentage, stage=f"{stage}/{total}")


class ProgressReporter:
    """
    Emits progress events to an optional callback and keeps a history.

    The callback may be a plain function or a coroutine function.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None, total: int = TOTAL_STAGES):
        self.callback = callback
        self.total = total
        self.history: List[ProgressEvent] = []

    async def emit(self, stage: int, message: str, complete: bool) -> ProgressEvent:
        event = report_progress(stage, self.total, message, complete)
        self.history.append(event)
        logger.info(f"[{event.stage}] {event.percentage:3d}% {event.message}")
        if self.callback is not None:
            result: Any = self.callback(event)
            if inspect.isawaitable(result):
                await result
        return event
