from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from correlator.notify.queue import NotifyQueue
from correlator.utils.types import NotificationIntent

log = structlog.get_logger("telegram")

TELEGRAM_MAX_CHARS = 4096

class ChatThrottle:
    """
    Token bucket for one chat, plus a hold set from Telegram's 429
    `retry_after`. The held message is not resent; later ones wait.
    """
    def __init__(self, per_sec: float, burst: int = 1):
        self.per_sec = float(per_sec)
        self.burst = int(burst)
        self._tokens = float(burst)
        self._last: Optional[float] = None
        self._hold_until = 0.0
        self._lock = asyncio.Lock()

    def hold(self, seconds: float) -> None:
        now = asyncio.get_running_loop().time()
        self._hold_until = max(self._hold_until, now + max(0.0, seconds))

    async def wait(self):
        loop = asyncio.get_running_loop()
        async with self._lock:
            if self._hold_until > loop.time():
                await asyncio.sleep(self._hold_until - loop.time())
            now = loop.time()
            elapsed = 0.0 if self._last is None else now - self._last
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.per_sec)
            self._last = now
            if self._tokens < 1.0:
                await asyncio.sleep((1.0 - self._tokens) / self.per_sec)
                self._last = loop.time()
                self._tokens = 1.0
            self._tokens -= 1.0


@dataclass(slots=True)
class TelegramConfig:
    """One bot-API destination. Channels sharing (token, chat) share a worker."""
    bot_token: str
    chat_id: str
    parse_mode: Optional[str] = None  # "HTML" | "MarkdownV2" | None
    timeout_s: float = 8.0
    rate_per_sec: float = 1.0
    burst: int = 3
    api_base: str = "https://api.telegram.org"

    @property
    def destination(self) -> tuple[str, str]:
        return (self.bot_token, self.chat_id)

    @property
    def send_url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"


@dataclass(slots=True)
class DeliveryStats:
    sent: int = 0
    failed: int = 0


def split_message(text: str, limit: int = TELEGRAM_MAX_CHARS) -> list[str]:
    """Split on line boundaries so each part fits Telegram's size limit."""
    if len(text) <= limit:
        return [text]
    parts, cur = [], ""
    for line in text.split("\n"):
        while len(line) > limit:
            if cur:
                parts.append(cur)
                cur = ""
            parts.append(line[:limit])
            line = line[limit:]
        candidate = f"{cur}\n{line}" if cur else line
        if len(candidate) > limit:
            parts.append(cur)
            cur = line
        else:
            cur = candidate
    if cur:
        parts.append(cur)
    return parts


class TelegramNotifier:
    """
    Delivery worker for one (bot, chat) destination. Intents queue up in a
    bounded NotifyQueue; the worker splits long texts and posts each part
    once. A failed part is logged and counted, never resent.
    """
    def __init__(self, cfg: TelegramConfig, queue: Optional[NotifyQueue] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self.q = queue or NotifyQueue(maxsize=2000)
        self.stats = DeliveryStats()
        self._session = session
        self._own_session = session is None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._throttle = ChatThrottle(cfg.rate_per_sec, cfg.burst)

    def enqueue(self, intent: NotificationIntent) -> bool:
        return self.q.try_put(intent)

    async def start(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.cfg.timeout_s))
            self._own_session = True
        self._stop.clear()
        self._task = asyncio.create_task(self._loop(), name=f"telegram-{self.cfg.chat_id}")

    async def stop(self):
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session is not None and self._own_session:
            await self._session.close()
            self._session = None

    async def _loop(self):
        try:
            while not self._stop.is_set():
                await self.deliver(await self.q.get())
        except asyncio.CancelledError:
            return

    async def deliver(self, intent: NotificationIntent) -> bool:
        ok = True
        for part in split_message(intent.text):
            await self._throttle.wait()
            ok = await self.send(part, rule=intent.rule) and ok
        return ok

    async def send(self, text: str, *, rule: str = "") -> bool:
        if self._session is None:
            raise RuntimeError("TelegramNotifier.start() was not called")
        payload = {"chat_id": self.cfg.chat_id, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        try:
            async with self._session.post(self.cfg.send_url, json=payload) as resp:
                if resp.status == 200:
                    self.stats.sent += 1
                    return True
                body = await _body(resp)
                if resp.status == 429:
                    wait_s = _retry_after(body)
                    self._throttle.hold(wait_s)
                    log.warning("telegram_rate_limited", retry_after=wait_s, rule=rule, chat=self.cfg.chat_id)
                else:
                    log.warning("telegram_send_failed", status=resp.status, body=body, rule=rule)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("telegram_network_error", err=str(e), rule=rule)
        self.stats.failed += 1
        return False


async def _body(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return ""

def _retry_after(body: str, default: float = 1.0) -> float:
    """Telegram puts the wait in {"parameters": {"retry_after": N}}."""
    try:
        return float(json.loads(body)["parameters"]["retry_after"])
    except (ValueError, KeyError, TypeError):
        return default
