from correlator.alerts.detectors.matching import PairMatchDetector
from correlator.alerts.rules import PairMatchRule
from correlator.alerts.state import EngineState
from tests.helpers.factory import feed, make_alert

START = ("A", "B", "C", "D")
BIG = ("F", "G", "H")

def _det(**kw):
    base = dict(name="matching1", primary_groups=START, complementary_groups=BIG)
    base.update(kw)
    return PairMatchDetector(PairMatchRule(**base))

def test_primary_matches_recent_complementary():
    det, st = _det(), EngineState()
    assert feed(det, st, make_alert("X", "G", 0, fib_level="1.29")) == []
    out = feed(det, st, make_alert("X", "A", 30_000))
    assert len(out) == 1
    assert out[0].channel == "match"
    assert "Groups: A ↔ G" in out[0].text

def test_window_is_inclusive_and_symbol_scoped():
    det, st = _det(window_seconds=65), EngineState()
    feed(det, st, make_alert("X", "G", 0), make_alert("Y", "F", 0))
    assert len(feed(det, st, make_alert("X", "A", 65_000))) == 1
    assert feed(det, st, make_alert("Y", "A", 65_001)) == []
    assert feed(det, st, make_alert("Z", "A", 1)) == []

def test_unidirectional_ignores_complementary_arrivals():
    det, st = _det(), EngineState()
    feed(det, st, make_alert("X", "A", 0))
    assert feed(det, st, make_alert("X", "G", 40_000)) == []

def test_bidirectional_orders_primary_first():
    det, st = _det(bidirectional=True), EngineState()
    feed(det, st, make_alert("X", "A", 0))
    out = feed(det, st, make_alert("X", "G", 40_000))
    assert len(out) == 1
    assert "Groups: A ↔ G" in out[0].text

def test_most_recent_candidate_wins_and_is_not_consumed():
    det, st = _det(), EngineState()
    feed(det, st, make_alert("X", "F", 0), make_alert("X", "H", 10_000))
    out1 = feed(det, st, make_alert("X", "A", 20_000))
    out2 = feed(det, st, make_alert("X", "B", 21_000))
    assert "Groups: A ↔ H" in out1[0].text
    assert "Groups: B ↔ H" in out2[0].text

def test_same_set_matching_skips_own_group():
    det, st = _det(name="matching2", primary_groups=BIG, complementary_groups=BIG), EngineState()
    assert feed(det, st, make_alert("X", "G", 0)) == []
    assert feed(det, st, make_alert("X", "G", 1000)) == []
    out = feed(det, st, make_alert("X", "F", 2000))
    assert "Groups: G ↔ F" in out[0].text

def test_same_level_requires_intersection():
    det = _det(name="matching3", primary_groups=("G", "H"), complementary_groups=("G", "H"),
               require_same_level=True)
    st = EngineState()
    feed(det, st, make_alert("X", "G", 0, fib_level="1.29"))
    assert feed(det, st, make_alert("X", "H", 1000, level="0.618")) == []
    out = feed(det, st, make_alert("X", "H", 2000, level="-1.29"))
    assert len(out) == 1
    assert "Same Level" in out[0].text
    assert "Levels: ±1.29" in out[0].text

def test_same_level_without_level_is_ignored():
    det = _det(primary_groups=("G", "H"), complementary_groups=("G", "H"), require_same_level=True)
    st = EngineState()
    feed(det, st, make_alert("X", "G", 0, fib_level="1.29"))
    assert feed(det, st, make_alert("X", "H", 1000)) == []
