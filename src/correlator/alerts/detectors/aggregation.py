from __future__ import annotations

from collections import deque

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_aggregation
from correlator.alerts.rules import AggregationRule
from correlator.alerts.state import EngineState
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

class AggregationDetector(Detector[AggregationRule]):
    """
    Rolling count across a rule's groups. Alerts are buffered on ingestion;
    evaluation runs on the sweep (and on ingestion if evaluate_on_ingest).
    """
    time_based = True

    def _buffers(self, state: EngineState) -> dict[str, deque[Alert]]:
        bufs = state.scope(state.aggregation, self.name)
        for g in self.rule.groups:
            if g not in bufs:
                bufs[g] = deque()
        return bufs

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        if alert.group not in self.rule.groups:
            return []
        self._buffers(ctx.state)[alert.group].append(alert)
        if self.rule.evaluate_on_ingest:
            return self._evaluate(ctx.state, ctx.now)
        return []

    def on_tick(self, ctx: DetectionContext) -> list[NotificationIntent]:
        return self._evaluate(ctx.state, ctx.now)

    def _evaluate(self, state: EngineState, now: int) -> list[NotificationIntent]:
        rule = self.rule
        bufs = self._buffers(state)
        cutoff = now - seconds_to_ms(rule.window_seconds)

        counts: dict[str, int] = {}
        for g in rule.groups:
            buf = bufs[g]
            # buffers are time-ordered, prune from the front
            while buf and buf[0].timestamp < cutoff:
                buf.popleft()
            counts[g] = len(buf)
        total = sum(counts.values())

        if total < rule.threshold or state.in_cooldown(self.name, now):
            return []

        n = rule.recent_per_group
        recent = {g: list(bufs[g])[-n:] if n else [] for g in rule.groups}
        text = format_aggregation(self.name, total, rule.window_seconds, counts, recent)

        if rule.reset_policy == "clear":
            for g in rule.groups:
                bufs[g].clear()
        state.cooldowns[self.name] = now + seconds_to_ms(rule.cooldown_seconds)
        return [self.intent(text)]
