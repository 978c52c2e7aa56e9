import json

import pytest

from correlator.ingest import parser
from correlator.utils.types import Alert

def test_parse_alert_keeps_attributes():
    m = {"symbol": "NVDA", "group": "G", "fib_level": "1.29", "price": 181.5, "secret": "s"}
    a = parser.parse_alert(m, secret="s", now_ms=1_700_000_000_000)
    assert isinstance(a, Alert)
    assert a.symbol == "NVDA" and a.group == "G"
    assert a.timestamp == 1_700_000_000_000
    assert a.get("fib_level") == "1.29"
    assert a.get("price") == pytest.approx(181.5)
    assert "secret" not in a.attributes and "symbol" not in a.attributes

def test_parse_malformed_returns_none():
    for m in [{"group": "A"}, {"symbol": "X"}, {"symbol": " ", "group": "A"}, ["X", "A"], "text"]:
        assert parser.parse_alert(m, now_ms=0) is None

def test_missing_group_is_not_inferred():
    assert parser.parse_alert({"symbol": "X", "fib_level": "1.29"}, now_ms=0) is None

def test_secret_mismatch_raises():
    with pytest.raises(parser.AuthError):
        parser.parse_alert({"symbol": "X", "group": "A", "secret": "wrong"}, secret="right")
    with pytest.raises(parser.AuthError):
        parser.parse_alert({"symbol": "X", "group": "A"}, secret="right")

def test_no_secret_configured_accepts_anything():
    a = parser.parse_alert({"symbol": "X", "group": "A", "secret": 123}, now_ms=5)
    assert a is not None and a.timestamp == 5

def test_non_finite_numbers_are_dropped():
    m = json.loads('{"symbol": "X", "group": "A", "price": NaN, "high": Infinity, '
                   '"levels": [1.29, -Infinity], "meta": {"rsi": NaN, "tf": "5m"}}')
    a = parser.parse_alert(m, now_ms=0)
    assert "price" not in a.attributes and "high" not in a.attributes
    assert a.get("levels") == [1.29]
    assert a.get("meta") == {"tf": "5m"}
    json.dumps(a.to_dict(), allow_nan=False)

def test_redacted_removes_secret():
    assert parser.redacted({"symbol": "X", "secret": "s"}) == {"symbol": "X"}
    assert parser.redacted(["X"]) == ["X"]
