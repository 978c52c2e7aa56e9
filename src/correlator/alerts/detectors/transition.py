from __future__ import annotations

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_transition
from correlator.alerts.rules import TransitionRule
from correlator.alerts.state import LevelMark
from correlator.utils.types import Alert, NotificationIntent

class TransitionDetector(Detector[TransitionRule]):
    """
    Per symbol last (group, canonical level). Same level only refreshes the
    stored time; a different level fires and replaces the mark.
    """

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        if alert.group not in self.rule.groups:
            return []
        level = ctx.canonicalize(alert)
        if not level:
            return []
        marks = ctx.state.scope(ctx.state.transitions, self.name)
        prev = marks.get(alert.symbol)
        mark = LevelMark(group=alert.group, level=level.text or "", values=level.values, time=alert.timestamp)

        if prev is not None and prev.values == level.values:
            prev.time = alert.timestamp
            return []

        out: list[NotificationIntent] = []
        if prev is not None:
            out.append(self.intent(format_transition(
                symbol=alert.symbol,
                from_group=prev.group,
                from_level=prev.level,
                to_group=alert.group,
                to_level=mark.level,
                elapsed_ms=alert.timestamp - prev.time,
                ts=alert.timestamp,
                tz_name=ctx.tz_name,
            )))
        marks[alert.symbol] = mark
        return out
