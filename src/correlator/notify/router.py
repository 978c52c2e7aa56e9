from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

import structlog

from correlator.notify.telegram import TelegramConfig, TelegramNotifier
from correlator.utils.types import NotificationIntent

log = structlog.get_logger("router")

class Notifier(Protocol):
    def enqueue(self, intent: NotificationIntent) -> bool: ...

@dataclass(slots=True)
class RouterStats:
    routed: int = 0
    unrouted: int = 0
    dropped: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {"routed": self.routed, "unrouted": self.unrouted, "dropped": self.dropped, "failed": self.failed}


class NotificationRouter:
    """
    Fire-and-forget dispatch of an intent to the notifier bound to its channel.
    Channels without a destination are no-ops. Never raises.
    """
    def __init__(self, channels: Optional[Mapping[str, Notifier]] = None, echo: Optional[Notifier] = None):
        self.channels: dict[str, Notifier] = dict(channels or {})
        self.echo = echo
        self.stats = RouterStats()

    def route(self, intent: NotificationIntent) -> bool:
        if self.echo is not None:
            try:
                self.echo.enqueue(intent)
            except Exception as e:
                log.warning("echo_failed", err=str(e))

        target = self.channels.get(intent.channel)
        if target is None:
            self.stats.unrouted += 1
            return False
        try:
            ok = target.enqueue(intent)
        except Exception as e:
            self.stats.failed += 1
            log.warning("route_failed", channel=intent.channel, rule=intent.rule, err=str(e))
            return False
        if ok:
            self.stats.routed += 1
        else:
            self.stats.dropped += 1
            log.warning("notify_queue_full", channel=intent.channel, rule=intent.rule)
        return ok

    __call__ = route

    def notifiers(self) -> list[Notifier]:
        """Distinct channel notifiers (several channels may share one)."""
        out: list[Notifier] = []
        for n in self.channels.values():
            if all(n is not o for o in out):
                out.append(n)
        return out


def telegram_channels(destinations: Mapping[str, TelegramConfig]) -> dict[str, TelegramNotifier]:
    """channel -> notifier, one TelegramNotifier per distinct (token, chat)."""
    by_dest: dict[tuple[str, str], TelegramNotifier] = {}
    out: dict[str, TelegramNotifier] = {}
    for channel, cfg in destinations.items():
        n = by_dest.get(cfg.destination)
        if n is None:
            n = TelegramNotifier(cfg)
            by_dest[cfg.destination] = n
        out[channel] = n
    return out
