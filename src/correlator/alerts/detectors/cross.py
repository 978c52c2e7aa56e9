from __future__ import annotations

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_cross
from correlator.alerts.rules import CrossSymbolRule
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

class CrossSymbolDetector(Detector[CrossSymbolRule]):
    """Same group on both symbols of a configured pair within the window."""

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        if alert.group not in rule.groups:
            return []
        partners = rule.partners(alert.symbol)
        if not partners:
            return []

        seen = ctx.state.scope(ctx.state.cross_seen, self.name)
        window_ms = seconds_to_ms(rule.window_seconds)
        out: list[NotificationIntent] = []
        for other in partners:
            t = seen.get(other, {}).get(alert.group)
            if t is None or abs(alert.timestamp - t) > window_ms:
                continue
            out.append(self.intent(format_cross(
                rule_name=self.name,
                group=alert.group,
                first_symbol=other,
                first_ts=t,
                second_symbol=alert.symbol,
                second_ts=alert.timestamp,
                tz_name=ctx.tz_name,
            )))

        # window-based persistence, never consumed by a match
        seen.setdefault(alert.symbol, {})[alert.group] = alert.timestamp
        return out
