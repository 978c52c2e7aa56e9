from __future__ import annotations

from typing import Optional

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_match
from correlator.alerts.levels import CanonicalLevel
from correlator.alerts.rules import PairMatchRule
from correlator.alerts.store import ObservationRecord
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

class PairMatchDetector(Detector[PairMatchRule]):
    """
    Incoming alert ↔ most recent complementary record in the observation store
    within the window. Read-only against the store: a record may take part in
    any number of matches.
    """

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        if alert.group in rule.primary_groups:
            search = rule.complementary_groups
        elif rule.bidirectional and alert.group in rule.complementary_groups:
            search = rule.primary_groups
        else:
            return []

        level: Optional[CanonicalLevel] = None
        if rule.require_same_level:
            level = ctx.canonicalize(alert)
            if not level:
                return []

        window_ms = seconds_to_ms(rule.window_seconds)
        best: Optional[ObservationRecord] = None
        for rec in ctx.state.observations.for_symbol(alert.symbol, search):
            # the store already holds the incoming alert under its own group
            if rec.alert.group == alert.group:
                continue
            if abs(alert.timestamp - rec.time) > window_ms:
                continue
            if level is not None and not level.intersects(ctx.canonicalize(rec.alert)):
                continue
            if best is None or rec.time > best.time:
                best = rec
        if best is None:
            return []

        first, second = self._order(alert, best.alert)
        return [self.intent(format_match(
            rule_name=self.name,
            symbol=alert.symbol,
            first=first,
            second=second,
            level=level,
            tz_name=ctx.tz_name,
        ))]

    def _order(self, incoming: Alert, candidate: Alert) -> tuple[Alert, Alert]:
        """Primary-set alert first; chronological when both (or neither) are primary."""
        primary = self.rule.primary_groups
        inc_p = incoming.group in primary
        cand_p = candidate.group in primary
        if inc_p and not cand_p:
            return incoming, candidate
        if cand_p and not inc_p:
            return candidate, incoming
        if candidate.timestamp <= incoming.timestamp:
            return candidate, incoming
        return incoming, candidate
