# scan_app/scheduler.py

import asyncio
import logging
from typing import Optional

from .exceptions import ScanInProgressError
from .models import ScanSummary
from .utils import run_sync

log = logging.getLogger(__name__)


class MediaScanScheduler:
    """Runs a full scan every `interval_minutes` until the stop event is set."""

    def __init__(self, engine, interval_minutes: float = 60.0, run_on_start: bool = True):
        if interval_minutes <= 0:
            raise ValueError("Scan interval must be positive")
        self.engine = engine
        self.interval_seconds = float(interval_minutes) * 60.0
        self.run_on_start = run_on_start
        self.runs = 0

    async def execute_scheduled_scan(self) -> Optional[ScanSummary]:
        """One tick. Never raises: failures are logged and the next tick proceeds."""
        self.runs += 1
        try:
            folders = await run_sync(self.engine.store.list_folders, True)
            if not folders:
                log.info("No active media folders configured, skipping scheduled scan.")
                return None
            log.info(f"Scheduled media scan starting ({len(folders)} active folder(s)).")
            summary = await self.engine.run_full_scan()
        except ScanInProgressError:
            log.warning("Previous media scan still running, skipping this tick.")
            return None
        except Exception as e:
            log.exception(f"Scheduled media scan failed: {e}")
            return None
        log.info(f"Scheduled media scan finished: {summary.to_dict()}")
        return summary

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None, max_runs: Optional[int] = None):
        stop_event = stop_event or asyncio.Event()
        log.info(f"Media scan scheduler started (every {self.interval_seconds / 60:.1f} min).")
        if self.run_on_start:
            await self.execute_scheduled_scan()
        while not stop_event.is_set():
            if max_runs is not None and self.runs >= max_runs:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                await self.execute_scheduled_scan()
        log.info("Media scan scheduler stopped.")
