from correlator.alerts.detectors.base import DetectionContext
from correlator.alerts.levels import Canonicalizer
from correlator.alerts.state import EngineState
from correlator.utils.types import Alert

def make_alert(symbol="X", group="A", t=0, **attrs) -> Alert:
    return Alert(symbol=symbol, group=group, timestamp=int(t), attributes=attrs)

def make_ctx(state=None, now=0, tz_name="UTC") -> DetectionContext:
    return DetectionContext(
        state=state if state is not None else EngineState(),
        canonicalize=Canonicalizer(),
        now=now,
        tz_name=tz_name,
    )

def feed(detector, state, *alerts):
    """
    Mimic one engine pass per alert (store update first, then the detector).
    Returns all intents produced.
    """
    out = []
    for a in alerts:
        state.observations.record(a)
        out.extend(detector.on_alert(a, make_ctx(state, now=a.timestamp)))
    return out

def tick(detector, state, now):
    return detector.on_tick(make_ctx(state, now=now))

class Recorder:
    """Notifier stub that keeps every intent."""
    def __init__(self, accept=True):
        self.items = []
        self.accept = accept

    def enqueue(self, intent):
        self.items.append(intent)
        return self.accept
