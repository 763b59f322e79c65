# scan_app/progress.py

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

from .models import ProgressEvent

log = logging.getLogger(__name__)

# (status, percentage, details) -> anything; a returned awaitable is not awaited
ProgressCallback = Callable[[str, int, Optional[Dict[str, Any]]], Any]

# Strong references to scans started by stream_scan, so a consumer that walks
# away does not leave the task to be garbage collected mid-run.
_background_scans: Set["asyncio.Task[Any]"] = set()


class ProgressReporter:
    """
    Forwards scan checkpoints to an optional sink.

    Percentages are clamped to 0-100 and never go backwards. A failing sink
    is logged and ignored; the scan never waits on it.
    """

    def __init__(self, sink: Optional[ProgressCallback] = None):
        self.sink = sink
        self.last_progress = 0

    def emit(self, status: str, progress: int, details: Optional[Dict[str, Any]] = None) -> ProgressEvent:
        pct = max(self.last_progress, min(100, int(progress)))
        self.last_progress = pct
        if details:
            log.info(f"{status}: {pct}% - {json.dumps(details, default=str)}")
        else:
            log.info(f"{status}: {pct}%")
        event = ProgressEvent(status=status, progress=pct, details=details)
        if self.sink is not None:
            try:
                self.sink(status, pct, details)
            except Exception as e:
                log.warning(f"Progress sink raised {type(e).__name__}: {e}")
        return event


class CollectingProgressSink:
    """In-memory sink; handy for tests and for building a final report."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, status: str, progress: int, details: Optional[Dict[str, Any]] = None):
        self.events.append(ProgressEvent(status=status, progress=progress, details=details))

    @property
    def percentages(self) -> List[int]:
        return [e.progress for e in self.events]

    @property
    def last(self) -> Optional[ProgressEvent]:
        return self.events[-1] if self.events else None


_DONE = object()

def _retrieve_scan_error(task: "asyncio.Task[Any]"):
    # Marks the exception as retrieved when the consumer stopped listening early.
    if not task.cancelled() and task.exception() is not None:
        log.debug(f"Background scan ended with {type(task.exception()).__name__}: {task.exception()}")

async def stream_scan(engine) -> AsyncIterator[ProgressEvent]:
    """
    Runs a full scan in the background and yields its progress events.

    Always finishes with a terminal event (complete=True), carrying either
    the summary or an error. Closing the iterator early does not cancel the
    scan; it keeps running to completion.
    """
    queue: "asyncio.Queue[Any]" = asyncio.Queue()
    yield ProgressEvent(status="Starting scan", progress=0)

    def _sink(status: str, progress: int, details: Optional[Dict[str, Any]] = None):
        queue.put_nowait(ProgressEvent(status=status, progress=progress, details=details))

    task = asyncio.ensure_future(engine.run_full_scan(progress_callback=_sink))
    _background_scans.add(task)
    task.add_done_callback(_background_scans.discard)
    task.add_done_callback(_retrieve_scan_error)
    task.add_done_callback(lambda _t: queue.put_nowait(_DONE))

    last_progress = 0
    while True:
        item = await queue.get()
        if item is _DONE:
            break
        last_progress = item.progress
        yield item

    if task.cancelled():
        yield ProgressEvent(status="Error", progress=last_progress, complete=True, error="Failed to complete scan")
        return
    error = task.exception()
    if error is not None:
        log.error(f"Streaming scan failed: {type(error).__name__}: {error}")
        yield ProgressEvent(status="Error", progress=last_progress, complete=True, error="Failed to complete scan")
        return
    summary = task.result()
    yield ProgressEvent(status="Scan completed", progress=100, details=summary.to_dict(), complete=True)
