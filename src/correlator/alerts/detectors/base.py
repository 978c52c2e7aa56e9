from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Generic, TypeVar

from correlator.alerts.levels import Canonicalizer
from correlator.alerts.state import EngineState
from correlator.utils.types import Alert, NotificationIntent

R = TypeVar("R")

@dataclass(slots=True)
class DetectionContext:
    """What a detector may touch during one invocation."""
    state: EngineState
    canonicalize: Canonicalizer
    now: int
    tz_name: str = "UTC"
    # set by a detector that changed persisted state without emitting
    mutated: bool = False


class Detector(Generic[R]):
    """
    One configured state machine. Detectors are synchronous and never do I/O:
    they read/mutate their own sub-store of `ctx.state` and return intents.
    `time_based` detectors are also driven by the scheduler sweep.
    """
    time_based: ClassVar[bool] = False

    def __init__(self, rule: R):
        self.rule = rule
        self.name: str = rule.name  # type: ignore[attr-defined]
        self.channel: str = rule.channel  # type: ignore[attr-defined]

    def on_alert(self, alert: Alert, ctx: DetectionContext) -> list[NotificationIntent]:
        return []

    def on_tick(self, ctx: DetectionContext) -> list[NotificationIntent]:
        return []

    def intent(self, text: str) -> NotificationIntent:
        return NotificationIntent(channel=self.channel, text=text, rule=self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
