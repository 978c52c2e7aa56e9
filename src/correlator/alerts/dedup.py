from __future__ import annotations

from typing import Callable, Optional

from correlator.utils.time import utc_now_ms
from correlator.utils.types import Alert

class TTLDeduper:
    """
    TTL-based dedupe cache with max size. Keys expire after ttl_ms.
    """
    def __init__(self, ttl_ms: int, max_size: int = 10_000, clock: Optional[Callable[[], int]] = None):
        self.ttl_ms = int(ttl_ms)
        self.max_size = max_size
        self._clock = clock or utc_now_ms
        self._store: dict[str, int] = {}  # key -> expire_ts (ms)

    def _now(self) -> int:
        return self._clock()

    def seen_recently(self, key: str) -> bool:
        now = self._now()
        exp = self._store.get(key)
        if exp is None:
            return False
        if exp <= now:
            # expired; cleanup
            self._store.pop(key, None)
            return False
        return True

    def mark(self, key: str) -> None:
        # opportunistic cleanup when large
        if len(self._store) > self.max_size:
            now = self._now()
            # drop expired keys among the oldest ~25%
            for k, exp in list(self._store.items())[: self.max_size // 4]:
                if exp <= now:
                    self._store.pop(k, None)
        self._store[key] = self._now() + self.ttl_ms

    def __len__(self) -> int:
        return len(self._store)


class AlertDeduplicator:
    """
    Suppresses an identical (symbol, group, time-bucket) alert re-submitted
    within the TTL. Bucket is taken from the ingestion timestamp.
    """
    def __init__(self, ttl_ms: int = 5_000, bucket_ms: int = 1_000, clock: Optional[Callable[[], int]] = None):
        self.bucket_ms = max(1, int(bucket_ms))
        self._cache = TTLDeduper(ttl_ms=ttl_ms, max_size=50_000, clock=clock)

    def key(self, alert: Alert) -> str:
        bucket = (alert.timestamp // self.bucket_ms) * self.bucket_ms
        return f"{alert.symbol}:{alert.group}:{bucket}"

    def is_duplicate(self, alert: Alert) -> bool:
        """True if seen within TTL; otherwise marks it and returns False."""
        if self._cache.ttl_ms <= 0:
            return False
        k = self.key(alert)
        if self._cache.seen_recently(k):
            return True
        self._cache.mark(k)
        return False
