from __future__ import annotations

from correlator.alerts.detectors.base import DetectionContext, Detector
from correlator.alerts.formatting import format_strong_signal
from correlator.alerts.rules import StrongSignalRule
from correlator.utils.types import Alert, NotificationIntent

class StrongSignalDetector(Detector[StrongSignalRule]):
    """Stateless: direction and momentum agree on a single alert."""

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        if self.rule.groups and alert.group not in self.rule.groups:
            return []
        direction = str(alert.get("direction") or "").strip().lower()
        momentum = str(alert.get("momentum") or "").strip().lower()
        if not direction or direction != momentum:
            return []
        return [self.intent(format_strong_signal(alert, direction, momentum))]
