from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

# ---- ingest-level primitives ----

@dataclass(frozen=True, slots=True)
class Alert:
    """
    One ingested observation. `timestamp` is the ingestion clock in ms.
    `attributes` keeps every other payload field for notification text.
    """
    symbol: str
    group: str
    timestamp: int
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # read-only view so the alert stays immutable after construction
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "group": self.group,
            "timestamp": self.timestamp,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Alert":
        return cls(
            symbol=str(d["symbol"]),
            group=str(d["group"]),
            timestamp=int(d["timestamp"]),
            attributes=dict(d.get("attributes") or {}),
        )


# ---- notification domain ----

CHANNELS: tuple[str, ...] = (
    "aggregate", "episode", "gap", "transition", "match",
    "burst", "oneshot", "cross", "lookback", "signal",
)

@dataclass(frozen=True, slots=True)
class NotificationIntent:
    channel: str
    text: str
    rule: str = ""
