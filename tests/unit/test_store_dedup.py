from correlator.alerts.dedup import AlertDeduplicator, TTLDeduper
from correlator.alerts.store import ObservationStore
from correlator.utils.time import ManualClock
from tests.helpers.factory import make_alert

def test_store_keeps_only_latest_per_symbol_group():
    st = ObservationStore()
    st.record(make_alert("X", "A", 0))
    st.record(make_alert("X", "A", 500, price=2))
    st.record(make_alert("X", "G", 100))
    st.record(make_alert("Y", "A", 50))
    assert len(st) == 3
    assert st.get("X", "A").time == 500
    assert st.get("X", "A").alert.get("price") == 2
    assert st.get("Z", "A") is None

def test_store_latest_filters():
    st = ObservationStore()
    st.record(make_alert("X", "A", 0))
    st.record(make_alert("X", "B", 300))
    st.record(make_alert("X", "C", 900))
    assert st.latest("X", ["A", "B", "C"]).alert.group == "C"
    assert st.latest("X", ["A", "B", "C"], exclude_group="C").alert.group == "B"
    assert st.latest("X", ["A", "B", "C"], not_after=100).alert.group == "A"
    assert st.latest("X", ["D"]) is None

def test_store_roundtrip_list():
    st = ObservationStore()
    st.record(make_alert("X", "G", 10, fib_level="1.29"))
    copy = ObservationStore.from_list(st.to_list())
    assert copy.get("X", "G").alert.get("fib_level") == "1.29"

def test_ttl_deduper_expires():
    clock = ManualClock(0)
    d = TTLDeduper(ttl_ms=1000, clock=clock)
    assert not d.seen_recently("k")
    d.mark("k")
    assert d.seen_recently("k")
    clock.advance(1000)
    assert not d.seen_recently("k")

def test_alert_deduplicator_by_symbol_group_bucket():
    clock = ManualClock(0)
    d = AlertDeduplicator(ttl_ms=5000, bucket_ms=1000, clock=clock)
    assert not d.is_duplicate(make_alert("X", "A", 100))
    assert d.is_duplicate(make_alert("X", "A", 900))        # same bucket
    assert not d.is_duplicate(make_alert("X", "B", 900))    # other group
    assert not d.is_duplicate(make_alert("X", "A", 1100))   # next bucket
    clock.advance(6000)
    assert not d.is_duplicate(make_alert("X", "A", 100))    # ttl passed

def test_alert_deduplicator_disabled_with_zero_ttl():
    d = AlertDeduplicator(ttl_ms=0)
    a = make_alert("X", "A", 0)
    assert not d.is_duplicate(a)
    assert not d.is_duplicate(a)
