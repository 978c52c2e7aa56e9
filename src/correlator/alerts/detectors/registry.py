from __future__ import annotations

from typing import Iterable

from correlator.alerts.detectors.aggregation import AggregationDetector
from correlator.alerts.detectors.base import Detector
from correlator.alerts.detectors.burst import BurstDetector
from correlator.alerts.detectors.cross import CrossSymbolDetector
from correlator.alerts.detectors.episode import EpisodeDetector
from correlator.alerts.detectors.gap import GapDetector
from correlator.alerts.detectors.lookback import LookbackDetector
from correlator.alerts.detectors.matching import PairMatchDetector
from correlator.alerts.detectors.oneshot import OneShotDetector
from correlator.alerts.detectors.signal import StrongSignalDetector
from correlator.alerts.detectors.transition import TransitionDetector
from correlator.alerts.rules import Rule

DETECTOR_TYPES: dict[str, type[Detector]] = {
    "aggregation": AggregationDetector,
    "episode": EpisodeDetector,
    "gap": GapDetector,
    "transition": TransitionDetector,
    "match": PairMatchDetector,
    "burst": BurstDetector,
    "oneshot": OneShotDetector,
    "cross": CrossSymbolDetector,
    "lookback": LookbackDetector,
    "signal": StrongSignalDetector,
}

def build_detector(rule: Rule) -> Detector:
    return DETECTOR_TYPES[rule.type](rule)

def build_detectors(rules: Iterable[Rule]) -> list[Detector]:
    """One detector per rule, in rule order (the engine's invocation order)."""
    return [build_detector(r) for r in rules]
