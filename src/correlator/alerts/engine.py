from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import structlog

from correlator.alerts.dedup import AlertDeduplicator
from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.levels import Canonicalizer
from correlator.alerts.state import EngineState
from correlator.utils.time import utc_now_ms
from correlator.utils.types import Alert, NotificationIntent

log = structlog.get_logger("engine")

@dataclass(slots=True)
class EngineStats:
    alerts_processed: int = 0
    alerts_duplicate: int = 0
    sweeps: int = 0
    intents: int = 0
    emit_failures: int = 0
    detector_faults: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "alerts_processed": self.alerts_processed,
            "alerts_duplicate": self.alerts_duplicate,
            "sweeps": self.sweeps,
            "intents": self.intents,
            "emit_failures": self.emit_failures,
            "detector_faults": dict(self.detector_faults),
        }


class CorrelationEngine:
    """
    Runs every alert through dedupe → observation store → detectors (in
    registration order) and hands intents to `emit`. `sweep` drives the
    time-based detectors. Both paths are serialized through one lock; the
    detectors themselves are synchronous.

    Inputs:
      - detectors:   ordered list (see detectors.registry.build_detectors)
      - emit:        Callable[[NotificationIntent], None], must not block
      - on_mutation: Callable[[], None], called after state-mutating passes
    """
    def __init__(
        self,
        detectors: Sequence[Detector],
        *,
        state: Optional[EngineState] = None,
        canonicalizer: Optional[Canonicalizer] = None,
        deduper: Optional[AlertDeduplicator] = None,
        emit: Optional[Callable[[NotificationIntent], None]] = None,
        on_mutation: Optional[Callable[[], None]] = None,
        clock: Callable[[], int] = utc_now_ms,
        tz_name: str = "UTC",
    ):
        self.detectors = list(detectors)
        self.state = state or EngineState()
        self.canonicalizer = canonicalizer or Canonicalizer()
        self.deduper = deduper
        self.emit = emit
        self.on_mutation = on_mutation
        self.clock = clock
        self.tz_name = tz_name
        self.stats = EngineStats()
        self.lock = asyncio.Lock()
        self._timed = [d for d in self.detectors if d.time_based]

    @property
    def rule_names(self) -> list[str]:
        return [d.name for d in self.detectors]

    # --- async entry points (serialized) ---

    async def submit(self, alert: Alert) -> list[NotificationIntent]:
        async with self.lock:
            return self.process(alert)

    async def sweep(self, now: Optional[int] = None) -> list[NotificationIntent]:
        async with self.lock:
            return self.tick(now)

    # --- core passes ---

    def process(self, alert: Alert) -> list[NotificationIntent]:
        """One full pipeline pass for one alert. Never raises for detector faults."""
        if self.deduper is not None and self.deduper.is_duplicate(alert):
            self.stats.alerts_duplicate += 1
            log.debug("alert_duplicate", symbol=alert.symbol, group=alert.group)
            return []

        self.state.observations.record(alert)
        ctx = self._ctx(alert.timestamp)
        out: list[NotificationIntent] = []
        for det in self.detectors:
            out.extend(self._invoke(det, "on_alert", det.on_alert, alert, ctx))

        self.stats.alerts_processed += 1
        self._dispatch(out)
        self._mutated()
        return out

    def tick(self, now: Optional[int] = None) -> list[NotificationIntent]:
        ctx = self._ctx(self.clock() if now is None else int(now))
        out: list[NotificationIntent] = []
        for det in self._timed:
            out.extend(self._invoke(det, "on_tick", det.on_tick, ctx))
        self.stats.sweeps += 1
        self._dispatch(out)
        if out or ctx.mutated:
            self._mutated()
        return out

    # --- helpers ---

    def _ctx(self, now: int) -> DetectionContext:
        return DetectionContext(state=self.state, canonicalize=self.canonicalizer, now=now, tz_name=self.tz_name)

    def _invoke(self, det: Detector, phase: str, fn, *args) -> list[NotificationIntent]:
        try:
            return fn(*args)
        except Exception as e:
            self.stats.detector_faults[det.name] = self.stats.detector_faults.get(det.name, 0) + 1
            log.exception("detector_fault", detector=det.name, phase=phase, err=str(e))
            return []

    def _dispatch(self, intents: list[NotificationIntent]) -> None:
        if not intents:
            return
        self.stats.intents += len(intents)
        if self.emit is None:
            return
        for it in intents:
            try:
                self.emit(it)
            except Exception as e:
                self.stats.emit_failures += 1
                log.warning("emit_failed", rule=it.rule, channel=it.channel, err=str(e))

    def _mutated(self) -> None:
        if self.on_mutation is None:
            return
        try:
            self.on_mutation()
        except Exception as e:
            log.warning("mutation_hook_failed", err=str(e))
