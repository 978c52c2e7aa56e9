from __future__ import annotations

import structlog

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import chunked, format_burst
from correlator.alerts.rules import BurstRule
from correlator.alerts.state import BurstWindow, EngineState
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

log = structlog.get_logger("burst")

class BurstDetector(Detector[BurstRule]):
    """
    Global collector. The first qualifying alert while idle opens a window with
    an explicit deadline; distinct symbols are accumulated until the sweep (or
    a later alert) finds the deadline passed. At or above min_count the window
    is reported and every collected symbol is granted eligibility for the
    one-shot rules listed in `arms`. Always back to idle after closing.
    """
    time_based = True

    def _window(self, state: EngineState) -> BurstWindow:
        return state.scope(state.bursts, self.name, BurstWindow)

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        if alert.group not in self.rule.groups:
            return []
        w = self._window(ctx.state)
        out: list[NotificationIntent] = []
        if w.collecting and w.deadline is not None and alert.timestamp >= w.deadline:
            out.extend(self._close(ctx, w))
        if not w.collecting:
            w.collecting = True
            w.opened_at = alert.timestamp
            w.deadline = alert.timestamp + seconds_to_ms(self.rule.window_seconds)
            w.symbols = {}
        # first occurrence wins
        w.symbols.setdefault(alert.symbol, alert.timestamp)
        return out

    def on_tick(self, ctx: DetectionContext) -> list[NotificationIntent]:
        w = ctx.state.bursts.get(self.name)
        if w is None or not w.collecting or w.deadline is None or ctx.now < w.deadline:
            return []
        return self._close(ctx, w)

    def _close(self, ctx: DetectionContext, w: BurstWindow) -> list[NotificationIntent]:
        rule = self.rule
        try:
            closed_at = w.deadline if w.deadline is not None else ctx.now
            entries = sorted(w.symbols.items(), key=lambda kv: kv[1])
            if len(entries) < rule.min_count:
                log.debug("burst_below_threshold", rule=self.name, count=len(entries))
                return []

            parts = list(chunked(entries, rule.chunk_size))
            out = [
                self.intent(format_burst(
                    rule_name=self.name,
                    entries=part,
                    total=len(entries),
                    window_seconds=rule.window_seconds,
                    part=i,
                    parts=len(parts),
                    tz_name=ctx.tz_name,
                ))
                for i, part in enumerate(parts, start=1)
            ]
            for target in rule.arms:
                grants = ctx.state.scope(ctx.state.eligibility, target)
                for sym, _ in entries:
                    grants[sym] = closed_at
            log.info("burst_fired", rule=self.name, count=len(entries), arms=list(rule.arms))
            return out
        finally:
            w.reset()
