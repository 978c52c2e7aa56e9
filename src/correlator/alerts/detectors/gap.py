from __future__ import annotations

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_gap
from correlator.alerts.rules import GapRule
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

class GapDetector(Detector[GapRule]):
    """First qualifying alert after a long silence, two severity tiers."""

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        if alert.group not in rule.groups:
            return []
        last_by_symbol = ctx.state.scope(ctx.state.gaps, self.name)
        prev = last_by_symbol.get(alert.symbol)

        out: list[NotificationIntent] = []
        if prev is not None:
            gap = alert.timestamp - prev
            severity, threshold = None, 0.0
            if gap > seconds_to_ms(rule.high_seconds):
                severity, threshold = "high", rule.high_seconds
            elif gap > seconds_to_ms(rule.medium_seconds):
                severity, threshold = "medium", rule.medium_seconds
            if severity:
                out.append(self.intent(format_gap(
                    symbol=alert.symbol,
                    group=alert.group,
                    severity=severity,
                    gap_ms=gap,
                    threshold_s=threshold,
                    ts=alert.timestamp,
                    tz_name=ctx.tz_name,
                )))

        last_by_symbol[alert.symbol] = alert.timestamp
        return out
