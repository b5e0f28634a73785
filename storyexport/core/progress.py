"""
Progress reporting for export runs.

A reporter is a plain synchronous callable receiving `ProgressEvent`s. It is
passed into each export call explicitly, so concurrent exports never share
a channel.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ProgressPhase(str, Enum):
    PREPARE = "prepare"
    DOWNLOAD = "download"
    ZIP = "zip"
    DONE = "done"


@dataclass(frozen=True)
class ProgressEvent:
    phase: ProgressPhase
    completed: Optional[int] = None
    total: Optional[int] = None
    percent: Optional[int] = None
    message: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        """WebSocket/JSON form of the event."""
        payload: Dict[str, Any] = {"type": "progress", "phase": self.phase.value}
        if self.completed is not None:
            payload["completed"] = self.completed
        if self.total is not None:
            payload["total"] = self.total
        if self.percent is not None:
            payload["percent"] = self.percent
        if self.message:
            payload["message"] = self.message
        return payload


ProgressReporter = Callable[[ProgressEvent], None]


def null_reporter(event: ProgressEvent) -> None:
    """Reporter that discards every event."""


def logging_reporter(event: ProgressEvent) -> None:
    """Reporter that writes each event to the module logger."""
    if event.phase == ProgressPhase.DOWNLOAD:
        logger.info("Downloading assets: %s/%s", event.completed, event.total)
    elif event.phase == ProgressPhase.ZIP:
        logger.info("Compressing archive: %s%%", event.percent)
    else:
        logger.info("Export %s%s", event.phase.value, f": {event.message}" if event.message else "")


class RecordingReporter:
    """Keeps every event in memory. Handy for tests and CLI summaries."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def phases(self) -> List[ProgressPhase]:
        return [event.phase for event in self.events]


class QueueReporter:
    """
    Hands events to an asyncio queue drained by a sender coroutine.

    Must be called from the event loop thread that owns the queue.
    """

    def __init__(self, queue: "asyncio.Queue[Optional[ProgressEvent]]") -> None:
        self.queue = queue

    def __call__(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)

    def close(self) -> None:
        self.queue.put_nowait(None)


class PhaseReporter:
    """Typed helpers over a raw reporter used by the pipeline stages."""

    def __init__(self, reporter: Optional[ProgressReporter] = None) -> None:
        self._reporter = reporter or null_reporter

    def prepare(self, message: str) -> None:
        self._emit(ProgressEvent(ProgressPhase.PREPARE, message=message))

    def download(self, completed: int, total: int) -> None:
        self._emit(ProgressEvent(ProgressPhase.DOWNLOAD, completed=completed, total=total))

    def zip(self, percent: int) -> None:
        self._emit(ProgressEvent(ProgressPhase.ZIP, percent=percent))

    def done(self, message: Optional[str] = None) -> None:
        self._emit(ProgressEvent(ProgressPhase.DONE, message=message))

    def _emit(self, event: ProgressEvent) -> None:
        try:
            self._reporter(event)
        except Exception as e:
            # A broken progress sink must not abort the export
            logger.warning(f"Progress reporter failed on {event.phase.value}: {e}")
