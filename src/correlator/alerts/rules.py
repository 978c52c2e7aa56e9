# src/correlator/alerts/rules.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Literal, Mapping, Optional, Union

import structlog

from correlator.alerts.scoring import EpisodeScoring

log = structlog.get_logger("rules")

ResetPolicy = Literal["clear", "retain"]

DEFAULT_WINDOW_SECONDS = 45
DEFAULT_COOLDOWN_SECONDS = 60
MATCH_WINDOW_SECONDS = 65

# ---------- helpers for the declarative (JSON) rule format ----------

def _pick(d: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default

def _groups(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    return tuple(dict.fromkeys(str(g).strip() for g in raw if str(g).strip()))

def _positive(v: Any, what: str) -> float:
    f = float(v)
    if not f > 0:
        raise ValueError(f"{what} must be > 0")
    return f

def _non_negative(v: Any, what: str) -> float:
    f = float(v)
    if f < 0:
        raise ValueError(f"{what} must be >= 0")
    return f

def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ValueError(msg)


# ---------- rule families ----------

@dataclass(slots=True)
class AggregationRule:
    """
    Fire when >= threshold alerts of `groups` arrived in the last window_seconds.
    - reset_policy = "clear"  → buffers emptied after a fire
                     "retain" → buffers kept, cooldown alone rate-limits
    """
    type: ClassVar[str] = "aggregation"
    name: str
    groups: tuple[str, ...]
    threshold: int = 3
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    reset_policy: ResetPolicy = "clear"
    recent_per_group: int = 5
    evaluate_on_ingest: bool = False
    channel: str = "aggregate"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "AggregationRule":
        groups = _groups(_pick(d, "groups"))
        _require(bool(groups), "groups must not be empty")
        policy = str(_pick(d, "resetPolicy", "reset_policy", default="clear")).lower()
        _require(policy in ("clear", "retain"), f"unknown resetPolicy {policy!r}")
        return cls(
            name=name,
            groups=groups,
            threshold=int(_positive(_pick(d, "threshold", default=3), "threshold")),
            window_seconds=_positive(
                _pick(d, "windowSeconds", "window_seconds", default=defaults.window_seconds), "windowSeconds"),
            cooldown_seconds=_non_negative(
                _pick(d, "cooldownSeconds", "cooldown_seconds", default=defaults.cooldown_seconds), "cooldownSeconds"),
            reset_policy=policy,  # type: ignore[arg-type]
            recent_per_group=int(_non_negative(_pick(d, "recentPerGroup", "recent_per_group", default=5), "recentPerGroup")),
            evaluate_on_ingest=bool(_pick(d, "evaluateOnIngest", "evaluate_on_ingest", default=False)),
            channel=str(_pick(d, "channel", default="aggregate")),
        )


@dataclass(slots=True)
class EpisodeTier:
    label: str
    max_seconds: float

@dataclass(slots=True)
class EpisodeRule:
    """
    start group → first end group within max_duration_seconds, classified into
    tiers by elapsed time. Default tiers: fast ≤ max/2, slow ≤ max.
    """
    type: ClassVar[str] = "episode"
    name: str
    start_groups: tuple[str, ...]
    end_groups: tuple[str, ...]
    max_duration_seconds: float = 7200
    tiers: list[EpisodeTier] = field(default_factory=list)
    scoring: Optional[EpisodeScoring] = None
    channel: str = "episode"

    def __post_init__(self):
        if not self.tiers:
            self.tiers = [
                EpisodeTier("fast", self.max_duration_seconds / 2),
                EpisodeTier("slow", self.max_duration_seconds),
            ]
        self.tiers.sort(key=lambda t: t.max_seconds)

    def classify(self, elapsed_s: float) -> Optional[str]:
        for t in self.tiers:
            if elapsed_s <= t.max_seconds:
                return t.label
        return None

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "EpisodeRule":
        start = _groups(_pick(d, "startGroups", "start_groups"))
        end = _groups(_pick(d, "endGroups", "end_groups"))
        _require(bool(start) and bool(end), "startGroups and endGroups are required")
        max_s = _positive(_pick(d, "maxDurationSeconds", "max_duration_seconds", default=7200), "maxDurationSeconds")
        tiers = [
            EpisodeTier(str(t["label"]), _positive(_pick(t, "maxSeconds", "max_seconds"), "tier maxSeconds"))
            for t in (_pick(d, "tiers", default=[]) or [])
        ]
        scoring_raw = _pick(d, "scoring")
        return cls(
            name=name,
            start_groups=start,
            end_groups=end,
            max_duration_seconds=max_s,
            tiers=tiers,
            scoring=EpisodeScoring.from_dict(scoring_raw) if scoring_raw else None,
            channel=str(_pick(d, "channel", default="episode")),
        )


@dataclass(slots=True)
class GapRule:
    """First qualifying alert after a long silence: > medium → medium, > high → high."""
    type: ClassVar[str] = "gap"
    name: str
    groups: tuple[str, ...]
    medium_seconds: float = 2 * 3600
    high_seconds: float = 5 * 3600
    channel: str = "gap"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "GapRule":
        groups = _groups(_pick(d, "groups"))
        _require(bool(groups), "groups must not be empty")
        med = _positive(_pick(d, "mediumSeconds", "medium_seconds", default=2 * 3600), "mediumSeconds")
        high = _positive(_pick(d, "highSeconds", "high_seconds", default=5 * 3600), "highSeconds")
        _require(med <= high, "mediumSeconds must be <= highSeconds")
        return cls(name=name, groups=groups, medium_seconds=med, high_seconds=high,
                   channel=str(_pick(d, "channel", default="gap")))


@dataclass(slots=True)
class TransitionRule:
    type: ClassVar[str] = "transition"
    name: str
    groups: tuple[str, ...]
    channel: str = "transition"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "TransitionRule":
        groups = _groups(_pick(d, "groups"))
        _require(bool(groups), "groups must not be empty")
        return cls(name=name, groups=groups, channel=str(_pick(d, "channel", default="transition")))


@dataclass(slots=True)
class PairMatchRule:
    """
    Incoming primary alert ↔ most recent complementary record within window.
    bidirectional: an incoming complementary alert also searches the primary set.
    """
    type: ClassVar[str] = "match"
    name: str
    primary_groups: tuple[str, ...]
    complementary_groups: tuple[str, ...]
    window_seconds: float = MATCH_WINDOW_SECONDS
    require_same_level: bool = False
    bidirectional: bool = False
    channel: str = "match"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "PairMatchRule":
        primary = _groups(_pick(d, "primaryGroups", "primary_groups"))
        comp = _groups(_pick(d, "complementaryGroups", "complementary_groups"))
        _require(bool(primary) and bool(comp), "primaryGroups and complementaryGroups are required")
        return cls(
            name=name,
            primary_groups=primary,
            complementary_groups=comp,
            window_seconds=_positive(_pick(d, "windowSeconds", "window_seconds", default=MATCH_WINDOW_SECONDS), "windowSeconds"),
            require_same_level=bool(_pick(d, "requireSameLevel", "require_same_level", default=False)),
            bidirectional=bool(_pick(d, "bidirectional", default=False)),
            channel=str(_pick(d, "channel", default="match")),
        )


@dataclass(slots=True)
class BurstRule:
    """
    Global window opened by the first qualifying alert; at the deadline,
    >= min_count distinct symbols → report + eligibility for `arms` rules.
    """
    type: ClassVar[str] = "burst"
    name: str
    groups: tuple[str, ...]
    window_seconds: float = 60
    min_count: int = 5
    arms: tuple[str, ...] = ()
    chunk_size: int = 40
    channel: str = "burst"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "BurstRule":
        groups = _groups(_pick(d, "groups"))
        _require(bool(groups), "groups must not be empty")
        return cls(
            name=name,
            groups=groups,
            window_seconds=_positive(_pick(d, "windowSeconds", "window_seconds", default=60), "windowSeconds"),
            min_count=int(_positive(_pick(d, "minCount", "min_count", default=5), "minCount")),
            arms=_groups(_pick(d, "arms", default=())),
            chunk_size=int(_positive(_pick(d, "chunkSize", "chunk_size", default=40), "chunkSize")),
            channel=str(_pick(d, "channel", default="burst")),
        )


@dataclass(slots=True)
class OneShotRule:
    """
    Arms once per eligibility grant (set by a burst rule), fires once on the
    first completing alert, then disarms.
    """
    type: ClassVar[str] = "oneshot"
    name: str
    arming_groups: tuple[str, ...]
    completing_groups: tuple[str, ...]
    eligibility_ttl_seconds: float = 1800
    rearm_cooldown_seconds: float = 900
    tracker_ttl_seconds: Optional[float] = None
    channel: str = "oneshot"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "OneShotRule":
        arming = _groups(_pick(d, "armingGroups", "arming_groups"))
        completing = _groups(_pick(d, "completingGroups", "completing_groups"))
        _require(bool(arming) and bool(completing), "armingGroups and completingGroups are required")
        _require(not set(arming) & set(completing), "armingGroups and completingGroups must be disjoint")
        ttl = _pick(d, "trackerTtlSeconds", "tracker_ttl_seconds")
        return cls(
            name=name,
            arming_groups=arming,
            completing_groups=completing,
            eligibility_ttl_seconds=_positive(
                _pick(d, "eligibilityTtlSeconds", "eligibility_ttl_seconds", default=1800), "eligibilityTtlSeconds"),
            rearm_cooldown_seconds=_non_negative(
                _pick(d, "rearmCooldownSeconds", "rearm_cooldown_seconds", default=900), "rearmCooldownSeconds"),
            tracker_ttl_seconds=None if ttl is None else _positive(ttl, "trackerTtlSeconds"),
            channel=str(_pick(d, "channel", default="oneshot")),
        )


@dataclass(slots=True)
class CrossSymbolRule:
    type: ClassVar[str] = "cross"
    name: str
    pairs: tuple[tuple[str, str], ...]
    groups: tuple[str, ...]
    window_seconds: float = MATCH_WINDOW_SECONDS
    channel: str = "cross"

    def partners(self, symbol: str) -> list[str]:
        out = []
        for a, b in self.pairs:
            if a == symbol:
                out.append(b)
            elif b == symbol:
                out.append(a)
        return out

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "CrossSymbolRule":
        pairs = []
        for p in _pick(d, "pairs", default=[]) or []:
            syms = _groups(p)
            _require(len(syms) == 2, f"pair {p!r} must name two distinct symbols")
            pairs.append((syms[0], syms[1]))
        groups = _groups(_pick(d, "groups"))
        _require(bool(pairs) and bool(groups), "pairs and groups are required")
        return cls(
            name=name,
            pairs=tuple(pairs),
            groups=groups,
            window_seconds=_positive(_pick(d, "windowSeconds", "window_seconds", default=MATCH_WINDOW_SECONDS), "windowSeconds"),
            channel=str(_pick(d, "channel", default="cross")),
        )


@dataclass(slots=True)
class LookbackTier:
    label: str
    seconds: float

@dataclass(slots=True)
class LookbackRule:
    """
    Trigger alert → nearest earlier anchor of the same symbol; the tightest
    window containing the gap fires once.
    """
    type: ClassVar[str] = "lookback"
    name: str
    trigger_groups: tuple[str, ...]
    anchor_groups: tuple[str, ...]
    windows: list[LookbackTier] = field(default_factory=list)
    channel: str = "lookback"

    def __post_init__(self):
        self.windows.sort(key=lambda w: w.seconds)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "LookbackRule":
        trig = _groups(_pick(d, "triggerGroups", "trigger_groups"))
        anchors = _groups(_pick(d, "anchorGroups", "anchor_groups"))
        _require(bool(trig) and bool(anchors), "triggerGroups and anchorGroups are required")
        windows = [
            LookbackTier(str(w["label"]), _positive(w["seconds"], "window seconds"))
            for w in (_pick(d, "windows", default=[]) or [])
        ]
        _require(bool(windows), "windows must not be empty")
        return cls(name=name, trigger_groups=trig, anchor_groups=anchors, windows=windows,
                   channel=str(_pick(d, "channel", default="lookback")))


@dataclass(slots=True)
class StrongSignalRule:
    """direction == momentum on a single alert. Empty groups → any group."""
    type: ClassVar[str] = "signal"
    name: str
    groups: tuple[str, ...] = ()
    channel: str = "signal"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], name: str, defaults: "RuleDefaults") -> "StrongSignalRule":
        return cls(name=name, groups=_groups(_pick(d, "groups")),
                   channel=str(_pick(d, "channel", default="signal")))


Rule = Union[
    AggregationRule, EpisodeRule, GapRule, TransitionRule, PairMatchRule,
    BurstRule, OneShotRule, CrossSymbolRule, LookbackRule, StrongSignalRule,
]

RULE_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (
        AggregationRule, EpisodeRule, GapRule, TransitionRule, PairMatchRule,
        BurstRule, OneShotRule, CrossSymbolRule, LookbackRule, StrongSignalRule,
    )
}


@dataclass(slots=True)
class RuleDefaults:
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS


def parse_rules(raw: Iterable[Any], defaults: Optional[RuleDefaults] = None) -> list[Rule]:
    """
    Build rules from declarative dicts. Entries without `type` are aggregation
    rules (legacy RULES format). Invalid entries are logged and skipped.
    """
    defaults = defaults or RuleDefaults()
    rules: list[Rule] = []
    seen: set[str] = set()
    for idx, d in enumerate(raw or []):
        if not isinstance(d, Mapping):
            log.warning("rule_invalid", index=idx, err="not an object")
            continue
        kind = str(d.get("type") or "aggregation").strip().lower()
        cls = RULE_TYPES.get(kind)
        if cls is None:
            log.warning("rule_invalid", index=idx, err=f"unknown type {kind!r}")
            continue
        name = str(d.get("name") or f"{kind}{idx + 1}").strip()
        if name in seen:
            log.warning("rule_invalid", index=idx, name=name, err="duplicate name")
            continue
        try:
            rule = cls.from_dict(d, name, defaults)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning("rule_invalid", index=idx, name=name, err=str(e))
            continue
        seen.add(name)
        rules.append(rule)

    # burst rules may only arm one-shot rules that exist
    oneshots = {r.name for r in rules if isinstance(r, OneShotRule)}
    for r in rules:
        if isinstance(r, BurstRule):
            unknown = [n for n in r.arms if n not in oneshots]
            if unknown:
                log.warning("burst_arms_unknown", rule=r.name, unknown=unknown)
                r.arms = tuple(n for n in r.arms if n in oneshots)
    return rules


def default_rules() -> list[Rule]:
    """Built-in detector set used when only aggregation rules are configured."""
    start = ("A", "B", "C", "D")
    big = ("F", "G", "H")
    return [
        EpisodeRule(name="tracking1", start_groups=start, end_groups=("G", "H")),
        GapRule(name="tracking2_3", groups=big),
        PairMatchRule(name="matching1", primary_groups=start, complementary_groups=big, bidirectional=True),
        PairMatchRule(name="matching2", primary_groups=big, complementary_groups=big),
        PairMatchRule(name="matching3", primary_groups=("G", "H"), complementary_groups=("G", "H"),
                      require_same_level=True),
        TransitionRule(name="level_shift", groups=big),
        LookbackRule(
            name="lookback1",
            trigger_groups=("G", "H"),
            anchor_groups=start,
            windows=[LookbackTier("short", 300), LookbackTier("long", 1800)],
        ),
        StrongSignalRule(name="strong_signal"),
    ]
