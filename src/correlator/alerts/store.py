from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from correlator.utils.types import Alert

@dataclass(frozen=True, slots=True)
class ObservationRecord:
    time: int
    alert: Alert


class ObservationStore:
    """
    symbol -> group -> latest alert. Shared read substrate for the lookback
    style detectors; only the engine writes to it.
    """
    __slots__ = ("_records",)

    def __init__(self):
        self._records: dict[str, dict[str, ObservationRecord]] = {}

    def record(self, alert: Alert) -> ObservationRecord:
        rec = ObservationRecord(time=alert.timestamp, alert=alert)
        self._records.setdefault(alert.symbol, {})[alert.group] = rec
        return rec

    def get(self, symbol: str, group: str) -> Optional[ObservationRecord]:
        return self._records.get(symbol, {}).get(group)

    def for_symbol(self, symbol: str, groups: Optional[Iterable[str]] = None) -> list[ObservationRecord]:
        by_group = self._records.get(symbol)
        if not by_group:
            return []
        if groups is None:
            return list(by_group.values())
        return [by_group[g] for g in groups if g in by_group]

    def latest(
        self,
        symbol: str,
        groups: Iterable[str],
        *,
        exclude_group: Optional[str] = None,
        not_after: Optional[int] = None,
    ) -> Optional[ObservationRecord]:
        """Most recent record among `groups`, optionally bounded by time."""
        best: Optional[ObservationRecord] = None
        for rec in self.for_symbol(symbol, groups):
            if exclude_group is not None and rec.alert.group == exclude_group:
                continue
            if not_after is not None and rec.time > not_after:
                continue
            if best is None or rec.time > best.time:
                best = rec
        return best

    def __len__(self) -> int:
        return sum(len(v) for v in self._records.values())

    def __iter__(self) -> Iterator[ObservationRecord]:
        for by_group in self._records.values():
            yield from by_group.values()

    # --- snapshot ---

    def to_list(self) -> list[dict]:
        return [r.alert.to_dict() for r in self]

    @classmethod
    def from_list(cls, items: Iterable[dict]) -> "ObservationStore":
        st = cls()
        for d in items:
            st.record(Alert.from_dict(d))
        return st
