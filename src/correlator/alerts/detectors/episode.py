from __future__ import annotations

import structlog

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_episode
from correlator.alerts.rules import EpisodeRule
from correlator.alerts.scoring import score_episode
from correlator.alerts.state import PendingEpisode
from correlator.utils.time import seconds_to_ms
from correlator.utils.types import Alert, NotificationIntent

log = structlog.get_logger("episode")

class EpisodeDetector(Detector[EpisodeRule]):
    """
    Per symbol: idle → pending → (complete | expired).

    A start alert opens or overwrites the pending episode; the first end alert
    closes it. Episodes older than max_duration are discarded silently, either
    by the closing alert or by the sweep.
    """
    time_based = True

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        rule = self.rule
        pending = ctx.state.scope(ctx.state.episodes, self.name)

        if alert.group in rule.start_groups:
            pending[alert.symbol] = PendingEpisode(
                start_group=alert.group, start_time=alert.timestamp, alert=alert,
            )
            return []

        if alert.group not in rule.end_groups:
            return []
        ep = pending.get(alert.symbol)
        if ep is None:
            return []

        elapsed = max(0, alert.timestamp - ep.start_time)
        tier = None
        if elapsed <= seconds_to_ms(rule.max_duration_seconds):
            tier = rule.classify(elapsed / 1000.0)
        if tier is None:
            pending.pop(alert.symbol, None)
            log.debug("episode_expired", rule=self.name, symbol=alert.symbol, elapsed_ms=elapsed)
            return []

        start_level = ctx.canonicalize(ep.alert)
        end_level = ctx.canonicalize(alert)
        score = None
        if rule.scoring is not None:
            score = score_episode(
                rule.scoring,
                elapsed_ms=elapsed,
                start_group=ep.start_group,
                end_group=alert.group,
                end_level=end_level,
            )

        out: list[NotificationIntent] = []
        if score is None or score >= rule.scoring.min_score:
            out.append(self.intent(format_episode(
                symbol=alert.symbol,
                tier=tier,
                start=ep.alert,
                start_level=start_level,
                end=alert,
                end_level=end_level,
                elapsed_ms=elapsed,
                score=score,
                tz_name=ctx.tz_name,
            )))
        else:
            log.debug("episode_below_min_score", rule=self.name, symbol=alert.symbol, score=score)

        pending.pop(alert.symbol, None)
        return out

    def on_tick(self, ctx: DetectionContext) -> list[NotificationIntent]:
        pending = ctx.state.episodes.get(self.name)
        if not pending:
            return []
        cutoff = ctx.now - seconds_to_ms(self.rule.max_duration_seconds)
        expired = [s for s, ep in pending.items() if ep.start_time < cutoff]
        for sym in expired:
            del pending[sym]
        if expired:
            ctx.mutated = True
        return []
