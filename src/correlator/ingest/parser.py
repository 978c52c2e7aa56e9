from __future__ import annotations
import hmac
import math
from typing import Any, Optional

from correlator.utils.types import Alert
from correlator.utils.time import utc_now_ms

class AuthError(Exception):
    """Shared secret missing or mismatched."""

RESERVED_FIELDS = ("symbol", "group", "secret")

_DROP = object()

def check_secret(m: dict, secret: Optional[str]) -> None:
    if not secret:
        return
    got = m.get("secret")
    if not isinstance(got, str) or not hmac.compare_digest(got.encode(), secret.encode()):
        raise AuthError("secret mismatch")

def _finite(v: Any) -> Any:
    # NaN/Infinity are valid for json.loads but not for the strict snapshot dump
    if isinstance(v, float) and not math.isfinite(v):
        return _DROP
    if isinstance(v, dict):
        return {k: x for k, x in ((k, _finite(x)) for k, x in v.items()) if x is not _DROP}
    if isinstance(v, list):
        return [x for x in map(_finite, v) if x is not _DROP]
    return v

def parse_alert(m: Any, *, secret: Optional[str] = None, now_ms: Optional[int] = None) -> Optional[Alert]:
    """
    Return an Alert for a webhook payload; None if it is malformed.
    Raises AuthError if a secret is configured and does not match.

    TradingView-style payload fields you may see:
      - "symbol":   "AAPL"
      - "group":    "G"
      - "fib_level" / "level": "1.29"
      - "direction", "momentum": "up" | "down"
      - "price", "time"
    A missing group is never inferred; such alerts are dropped.
    Non-finite numbers (NaN, Infinity) are dropped from the attributes.
    """
    if not isinstance(m, dict):
        return None
    check_secret(m, secret)

    sym = str(m.get("symbol") or "").strip()
    group = str(m.get("group") or "").strip()
    if not sym or not group:
        return None

    attrs = _finite({k: v for k, v in m.items() if k not in RESERVED_FIELDS})
    ts = utc_now_ms() if now_ms is None else int(now_ms)
    return Alert(symbol=sym, group=group, timestamp=ts, attributes=attrs)

def redacted(m: Any) -> Any:
    """Payload safe to log: the shared secret is removed."""
    if isinstance(m, dict) and "secret" in m:
        return {k: v for k, v in m.items() if k != "secret"}
    return m
