from __future__ import annotations

import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

# --- clock helpers (ms ingestion clock) ---

def utc_now_ms() -> int:
    """Unix epoch milliseconds (int)."""
    return time.time_ns() // 1_000_000

def seconds_to_ms(s: float | int) -> int:
    return int(round(float(s) * 1000))

def utc_dt(ts_ms: float | int) -> datetime:
    """Epoch milliseconds -> timezone-aware UTC datetime."""
    return datetime.fromtimestamp(float(ts_ms) / 1000.0, tz=timezone.utc)

def fmt_ts(ts_ms: int, tz_name: str = "UTC") -> str:
    """Epoch ms -> 'YYYY-MM-DD HH:MM:SS TZ' in the given zone."""
    return utc_dt(ts_ms).astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S %Z")

def fmt_duration(ms: int) -> str:
    """Compact human duration: 40s, 3m05s, 2h10m."""
    s = max(0, int(ms) // 1000)
    if s < 60:
        return f"{s}s"
    m, s = divmod(s, 60)
    if m < 60:
        return f"{m}m{s:02d}s"
    h, m = divmod(m, 60)
    return f"{h}h{m:02d}m"


class ManualClock:
    """
    Settable ms clock. Used for deterministic sweeps and in tests.
    """
    def __init__(self, start_ms: int = 0):
        self.now = int(start_ms)

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += int(ms)
        return self.now
