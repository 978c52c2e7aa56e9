from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from correlator.alerts.engine import CorrelationEngine

log = structlog.get_logger("scheduler")

class Sweeper:
    """
    Periodic tick for the time-based detectors (aggregation windows, burst
    deadlines, TTL expiry). Runs through engine.sweep so it never overlaps an
    alert pass.
    """
    def __init__(self, engine: CorrelationEngine, interval_ms: int = 1000):
        self.engine = engine
        self.interval_s = max(0.01, interval_ms / 1000.0)
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name="sweeper")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        try:
            while not self._stop.is_set():
                await asyncio.sleep(self.interval_s)
                try:
                    await self.engine.sweep()
                except Exception as e:
                    log.exception("sweep_failed", err=str(e))
        except asyncio.CancelledError:
            return
