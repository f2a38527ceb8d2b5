"""
Progress/result reporting channel.

The orchestrator reports (stage, percent) through a ProgressReporter, which
enforces the channel's rules before handing events to the caller's
callback:

- percent is clamped to [0, 100] and never decreases within one call
- every stage change is emitted, even with no time in between
- a failing callback never aborts the pipeline that reports to it
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from gigescrow.logging_config import get_logger

logger = get_logger(__name__)


class SubmissionStage(str, Enum):
    PREPARING = "preparing"
    ENCRYPTING = "encrypting"
    UPLOADING = "uploading"
    SUBMITTING = "submitting"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ProgressEvent:
    stage: SubmissionStage
    percent: int
    message: str = ""
    error: Optional[str] = None  # error tag on the final event of a failed call

    @property
    def terminal(self) -> bool:
        return self.stage == SubmissionStage.COMPLETE or self.error is not None


ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class ProgressReporter:
    """Per-call reporter. Not shared between submissions."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._stage: Optional[SubmissionStage] = None
        self._percent = 0
        self._closed = False

    @property
    def stage(self) -> Optional[SubmissionStage]:
        return self._stage

    @property
    def percent(self) -> int:
        return self._percent

    async def report(self, stage: SubmissionStage, percent: int, message: str = "") -> ProgressEvent:
        percent = max(self._percent, min(100, max(0, int(percent))))
        self._stage = stage
        self._percent = percent
        event = ProgressEvent(stage=stage, percent=percent, message=message)
        await self._emit(event)
        return event

    async def fail(self, error_tag: str, message: str = "") -> ProgressEvent:
        """Emit the terminal event of a failed call at the last reached stage."""
        event = ProgressEvent(
            stage=self._stage or SubmissionStage.PREPARING,
            percent=self._percent,
            message=message,
            error=error_tag,
        )
        await self._emit(event)
        return event

    async def _emit(self, event: ProgressEvent) -> None:
        if self._closed or self._callback is None:
            return
        if event.terminal:
            self._closed = True
        try:
            result = self._callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning(
                "Progress callback failed",
                exc_info=True,
                extra={"stage": event.stage.value, "percent": event.percent},
            )


_END = object()


class ProgressStream:
    """
    Async iterator of progress events, usable directly as a callback.

    Usage:
        stream = ProgressStream()
        task = asyncio.create_task(orchestrator.submit_deliverable(..., on_progress=stream))
        async for event in stream:
            render(event)

    Iteration stops after the terminal event (complete or failed).
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False

    async def __call__(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        await self._queue.put(event)
        if event.terminal:
            self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def __aiter__(self) -> "ProgressStream":
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item
