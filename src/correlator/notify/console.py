# src/correlator/notify/console.py
from __future__ import annotations

from correlator.utils.types import NotificationIntent

class ConsoleNotifier:
    """Prints every intent; used as the always-on echo next to Telegram."""

    def enqueue(self, intent: NotificationIntent) -> bool:
        print(f"[{intent.channel}:{intent.rule}]\n{intent.text}\n", flush=True)
        return True
