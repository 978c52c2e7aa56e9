from correlator.utils.time import ManualClock, fmt_duration, fmt_ts, seconds_to_ms

def test_seconds_to_ms():
    assert seconds_to_ms(45) == 45_000
    assert seconds_to_ms(0.5) == 500

def test_fmt_duration():
    assert fmt_duration(40_000) == "40s"
    assert fmt_duration(185_000) == "3m05s"
    assert fmt_duration(7_800_000) == "2h10m"
    assert fmt_duration(-5) == "0s"

def test_fmt_ts_zone():
    assert fmt_ts(0) == "1970-01-01 00:00:00 UTC"
    assert fmt_ts(0, "America/New_York") == "1969-12-31 19:00:00 EST"

def test_manual_clock():
    c = ManualClock(10)
    assert c() == 10
    assert c.advance(5) == 15 and c() == 15
