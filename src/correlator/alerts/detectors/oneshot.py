from __future__ import annotations

import structlog

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_oneshot
from correlator.alerts.rules import OneShotRule
from correlator.alerts.state import ArmedTracker
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

log = structlog.get_logger("oneshot")

class OneShotDetector(Detector[OneShotRule]):
    """
    Eligibility grants come only from burst rules. One grant arms at most one
    tracker; each tracker fires exactly once, on the first completing alert.
    """
    time_based = True

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        st = ctx.state
        now = alert.timestamp

        if alert.group in rule.completing_groups:
            armed = st.scope(st.armed, self.name)
            trackers = armed.get(alert.symbol)
            if not trackers:
                return []
            live = [t for t in trackers if not self._tracker_expired(t, now)]
            out = [
                self.intent(format_oneshot(
                    rule_name=self.name,
                    symbol=alert.symbol,
                    arming_group=t.group,
                    armed_at=t.armed_at,
                    completing=alert,
                    tz_name=ctx.tz_name,
                ))
                for t in live
            ]
            del armed[alert.symbol]
            return out

        if alert.group in rule.arming_groups:
            grants = st.scope(st.eligibility, self.name)
            granted_at = grants.get(alert.symbol)
            if granted_at is None:
                return []
            if now - granted_at > seconds_to_ms(rule.eligibility_ttl_seconds):
                del grants[alert.symbol]
                return []
            rearm = st.scope(st.rearm_until, self.name)
            if rearm.get(alert.symbol, 0) > now:
                return []
            st.scope(st.armed, self.name).setdefault(alert.symbol, []).append(
                ArmedTracker(symbol=alert.symbol, group=alert.group, armed_at=now, granted_at=granted_at)
            )
            del grants[alert.symbol]
            rearm[alert.symbol] = now + seconds_to_ms(rule.rearm_cooldown_seconds)
            log.debug("oneshot_armed", rule=self.name, symbol=alert.symbol, group=alert.group)
        return []

    def _tracker_expired(self, t: ArmedTracker, now: int) -> bool:
        ttl = self.rule.tracker_ttl_seconds
        return ttl is not None and now - t.armed_at > seconds_to_ms(ttl)

    def on_tick(self, ctx: DetectionContext) -> list[NotificationIntent]:
        st, now = ctx.state, ctx.now
        ttl_ms = seconds_to_ms(self.rule.eligibility_ttl_seconds)

        grants = st.eligibility.get(self.name)
        if grants:
            for sym in [s for s, g in grants.items() if now - g > ttl_ms]:
                del grants[sym]

        rearm = st.rearm_until.get(self.name)
        if rearm:
            for sym in [s for s, until in rearm.items() if until <= now]:
                del rearm[sym]

        armed = st.armed.get(self.name)
        if armed and self.rule.tracker_ttl_seconds is not None:
            for sym in list(armed):
                keep = [t for t in armed[sym] if not self._tracker_expired(t, now)]
                if keep:
                    armed[sym] = keep
                else:
                    del armed[sym]
        return []
