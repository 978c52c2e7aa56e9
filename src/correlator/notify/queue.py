from __future__ import annotations
import asyncio
from dataclasses import dataclass, field

from correlator.utils.types import NotificationIntent

@dataclass(slots=True)
class QueueStats:
    queued: int = 0
    dequeued: int = 0
    dropped: int = 0
    dropped_by_rule: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "queued": self.queued,
            "dequeued": self.dequeued,
            "dropped": self.dropped,
            "dropped_by_rule": dict(self.dropped_by_rule),
        }

class NotifyQueue:
    """
    Bounded outbox in front of one delivery worker. The engine side never
    waits: a full outbox drops the intent and counts it against its rule.
    """
    def __init__(self, maxsize: int = 2000):
        self._q: asyncio.Queue[NotificationIntent] = asyncio.Queue(maxsize=maxsize)
        self.stats = QueueStats()

    def try_put(self, intent: NotificationIntent) -> bool:
        try:
            self._q.put_nowait(intent)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            self.stats.dropped_by_rule[intent.rule] = self.stats.dropped_by_rule.get(intent.rule, 0) + 1
            return False
        self.stats.queued += 1
        return True

    async def get(self) -> NotificationIntent:
        intent = await self._q.get()
        self.stats.dequeued += 1
        return intent

    def pending(self) -> int:
        return self._q.qsize()
