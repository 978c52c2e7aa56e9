from __future__ import annotations

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_lookback
from correlator.alerts.rules import LookbackRule
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

class LookbackDetector(Detector[LookbackRule]):
    """
    Trigger → nearest anchor at or before it. The tightest configured window
    containing the gap fires; one notification per trigger at most.
    """

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        if alert.group not in rule.trigger_groups:
            return []

        # the store already holds the trigger under its own group
        nearest = ctx.state.observations.latest(
            alert.symbol, rule.anchor_groups, exclude_group=alert.group, not_after=alert.timestamp,
        )
        if nearest is None:
            return []

        gap = alert.timestamp - nearest.time
        for w in rule.windows:
            if gap <= seconds_to_ms(w.seconds):
                return [self.intent(format_lookback(
                    rule_name=self.name,
                    tier=w.label,
                    symbol=alert.symbol,
                    anchor=nearest.alert,
                    trigger=alert,
                    gap_ms=gap,
                    tz_name=ctx.tz_name,
                ))]
        return []
