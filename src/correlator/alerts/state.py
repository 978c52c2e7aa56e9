from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, TypeVar

from correlator.alerts.store import ObservationStore
from correlator.utils.types import Alert

SNAPSHOT_VERSION = 1

V = TypeVar("V")

# ---- per-family state records ----

@dataclass(slots=True)
class PendingEpisode:
    start_group: str
    start_time: int
    alert: Alert

@dataclass(slots=True)
class LevelMark:
    group: str
    level: str
    values: frozenset[float]
    time: int

@dataclass(slots=True)
class BurstWindow:
    collecting: bool = False
    opened_at: Optional[int] = None
    deadline: Optional[int] = None
    symbols: dict[str, int] = field(default_factory=dict)  # symbol -> first seen, insertion ordered

    def reset(self) -> None:
        self.collecting = False
        self.opened_at = None
        self.deadline = None
        self.symbols = {}

@dataclass(slots=True)
class ArmedTracker:
    symbol: str
    group: str
    armed_at: int
    granted_at: int


@dataclass(slots=True)
class EngineState:
    """
    All mutable state of the correlation engine, one named sub-store per
    detector family, each keyed by rule name. Detectors receive this object
    instead of owning module-level maps.
    """
    observations: ObservationStore = field(default_factory=ObservationStore)
    cooldowns: dict[str, int] = field(default_factory=dict)                          # rule -> next eligible ms
    aggregation: dict[str, dict[str, deque[Alert]]] = field(default_factory=dict)    # rule -> group -> buffer
    episodes: dict[str, dict[str, PendingEpisode]] = field(default_factory=dict)     # rule -> symbol -> pending
    gaps: dict[str, dict[str, int]] = field(default_factory=dict)                    # rule -> symbol -> last ms
    transitions: dict[str, dict[str, LevelMark]] = field(default_factory=dict)       # rule -> symbol -> mark
    bursts: dict[str, BurstWindow] = field(default_factory=dict)                     # rule -> window
    eligibility: dict[str, dict[str, int]] = field(default_factory=dict)             # rule -> symbol -> granted ms
    armed: dict[str, dict[str, list[ArmedTracker]]] = field(default_factory=dict)    # rule -> symbol -> trackers
    rearm_until: dict[str, dict[str, int]] = field(default_factory=dict)             # rule -> symbol -> ms
    cross_seen: dict[str, dict[str, dict[str, int]]] = field(default_factory=dict)   # rule -> symbol -> group -> ms

    @staticmethod
    def scope(family: dict[str, V], rule_name: str, factory=dict) -> V:
        st = family.get(rule_name)
        if st is None:
            st = factory()
            family[rule_name] = st
        return st

    def in_cooldown(self, rule_name: str, now: int) -> bool:
        return self.cooldowns.get(rule_name, 0) > now

    # --- snapshot (observations, episodes, gaps, transitions, cooldowns) ---

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "v": SNAPSHOT_VERSION,
            "observations": self.observations.to_list(),
            "episodes": {
                rule: {
                    sym: {"start_group": ep.start_group, "start_time": ep.start_time, "alert": ep.alert.to_dict()}
                    for sym, ep in by_sym.items()
                }
                for rule, by_sym in self.episodes.items()
            },
            "gaps": {rule: dict(by_sym) for rule, by_sym in self.gaps.items()},
            "transitions": {
                rule: {
                    sym: {"group": m.group, "level": m.level, "values": sorted(m.values), "time": m.time}
                    for sym, m in by_sym.items()
                }
                for rule, by_sym in self.transitions.items()
            },
            "cooldowns": dict(self.cooldowns),
        }

    @classmethod
    def from_snapshot(cls, blob: Mapping[str, Any]) -> "EngineState":
        """Raises (KeyError/TypeError/ValueError) on a malformed blob."""
        if int(blob.get("v", 0)) != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {blob.get('v')!r}")
        st = cls(observations=ObservationStore.from_list(blob.get("observations") or []))
        for rule, by_sym in (blob.get("episodes") or {}).items():
            st.episodes[rule] = {
                sym: PendingEpisode(
                    start_group=str(e["start_group"]),
                    start_time=int(e["start_time"]),
                    alert=Alert.from_dict(e["alert"]),
                )
                for sym, e in by_sym.items()
            }
        for rule, by_sym in (blob.get("gaps") or {}).items():
            st.gaps[rule] = {sym: int(ts) for sym, ts in by_sym.items()}
        for rule, by_sym in (blob.get("transitions") or {}).items():
            st.transitions[rule] = {
                sym: LevelMark(
                    group=str(m["group"]),
                    level=str(m["level"]),
                    values=frozenset(float(v) for v in m["values"]),
                    time=int(m["time"]),
                )
                for sym, m in by_sym.items()
            }
        st.cooldowns = {rule: int(ts) for rule, ts in (blob.get("cooldowns") or {}).items()}
        return st
