from correlator.alerts.levels import CanonicalLevel
from correlator.alerts.rules import (
    AggregationRule, BurstRule, EpisodeRule, OneShotRule, PairMatchRule, RuleDefaults,
    default_rules, parse_rules,
)
from correlator.alerts.scoring import EpisodeScoring, score_episode

def test_legacy_entries_are_aggregation_rules_with_defaults():
    rules = parse_rules(
        [{"name": "bot1", "groups": ["A", " B ", ""], "threshold": 4}],
        RuleDefaults(window_seconds=30, cooldown_seconds=90),
    )
    assert len(rules) == 1
    r = rules[0]
    assert isinstance(r, AggregationRule)
    assert r.groups == ("A", "B")
    assert r.threshold == 4
    assert r.window_seconds == 30
    assert r.cooldown_seconds == 90
    assert r.reset_policy == "clear"

def test_invalid_entries_are_filtered_not_rejected():
    rules = parse_rules([
        {"groups": []},                                        # empty groups
        {"type": "nope", "groups": ["A"]},                     # unknown type
        "not a dict",
        {"type": "gap", "groups": ["F"], "mediumSeconds": 10, "highSeconds": 5},
        {"type": "oneshot", "armingGroups": ["A"], "completingGroups": ["A"]},
        {"type": "match", "primaryGroups": ["A"], "complementaryGroups": ["G"], "windowSeconds": "x"},
        {"name": "ok", "groups": "A,B"},
        {"name": "ok", "groups": ["C"]},                       # duplicate name
    ])
    assert [r.name for r in rules] == ["ok"]

def test_generated_names_and_typed_rules():
    rules = parse_rules([
        {"type": "match", "primaryGroups": ["A"], "complementaryGroups": ["G"], "bidirectional": True},
        {"type": "episode", "startGroups": ["A"], "endGroups": ["G"], "maxDurationSeconds": 100},
    ])
    m, e = rules
    assert isinstance(m, PairMatchRule) and m.name == "match1" and m.bidirectional
    assert m.window_seconds == 65
    assert isinstance(e, EpisodeRule) and e.name == "episode2"
    assert [(t.label, t.max_seconds) for t in e.tiers] == [("fast", 50), ("slow", 100)]

def test_episode_classify_uses_first_matching_tier():
    e = EpisodeRule(name="e", start_groups=("A",), end_groups=("G",), max_duration_seconds=100)
    assert e.classify(10) == "fast"
    assert e.classify(50) == "fast"
    assert e.classify(51) == "slow"
    assert e.classify(101) is None

def test_burst_arms_only_existing_oneshot_rules():
    rules = parse_rules([
        {"type": "burst", "name": "b", "groups": ["A"], "arms": ["os", "ghost"]},
        {"type": "oneshot", "name": "os", "armingGroups": ["B"], "completingGroups": ["G"]},
    ])
    burst = next(r for r in rules if isinstance(r, BurstRule))
    assert burst.arms == ("os",)
    assert isinstance(rules[1], OneShotRule)

def test_default_rules_cover_builtin_detectors():
    names = [r.name for r in default_rules()]
    assert names[:5] == ["tracking1", "tracking2_3", "matching1", "matching2", "matching3"]
    assert "strong_signal" in names

def test_score_episode_rubric():
    rubric = EpisodeScoring.from_dict({
        "minScore": 5,
        "elapsedPoints": [{"maxSeconds": 60, "points": 3}, {"maxSeconds": 600, "points": 1}],
        "endGroupPoints": {"G": 2},
        "endLevelPoints": {"1.29": 1.5},
        "startGroupPoints": {"A": 1},
    })
    level = CanonicalLevel(text="-1.29", signed=-1.29, values=frozenset({1.29, -1.29}))
    assert score_episode(rubric, elapsed_ms=40_000, start_group="A", end_group="G", end_level=level) == 7.5
    assert score_episode(rubric, elapsed_ms=300_000, start_group="B", end_group="H",
                         end_level=CanonicalLevel()) == 1
    assert score_episode(rubric, elapsed_ms=3_600_000, start_group="B", end_group="H",
                         end_level=CanonicalLevel()) == 0

def test_malformed_scoring_block_skips_only_that_rule():
    rules = parse_rules([
        {"type": "episode", "name": "bad", "startGroups": ["A"], "endGroups": ["G"], "scoring": [1, 2]},
        {"type": "episode", "name": "bad_points", "startGroups": ["A"], "endGroups": ["G"],
         "scoring": {"endGroupPoints": ["G", 2]}},
        {"type": "gap", "name": "ok", "groups": ["F"]},
    ])
    assert [r.name for r in rules] == ["ok"]
