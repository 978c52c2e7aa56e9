from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog
from dotenv import load_dotenv

from correlator.alerts.levels import DEFAULT_LEVEL_SOURCES, LevelSource, parse_level_sources
from correlator.alerts.rules import (
    AggregationRule, Rule, RuleDefaults, default_rules, parse_rules,
)
from correlator.notify.telegram import TelegramConfig
from correlator.utils.types import CHANNELS

log = structlog.get_logger("config")

_TRUE = ("1", "true", "yes", "on")

def _str(env: Mapping[str, str], key: str, default: str = "") -> str:
    return (env.get(key) or default).strip()

def _num(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _str(env, key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("config_invalid_number", key=key, value=raw, default=default)
        return default

def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _str(env, key)
    if not raw:
        return default
    return raw.lower() in _TRUE

def _json(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        log.error("config_invalid_json", what=what, err=str(e))
        return None


def load_rules(env: Mapping[str, str], defaults: RuleDefaults) -> list[Rule]:
    """
    RULES (inline JSON list) or RULES_FILE (path). When no detector other than
    aggregation is configured and DEFAULT_DETECTORS is on, the built-in
    detector set is appended.
    """
    raw: Any = None
    inline = _str(env, "RULES")
    path = _str(env, "RULES_FILE")
    if inline:
        raw = _json(inline, "RULES")
    elif path:
        try:
            raw = _json(Path(path).read_text(encoding="utf-8"), "RULES_FILE")
        except OSError as e:
            log.error("rules_file_unreadable", path=path, err=str(e))
    if raw is not None and not isinstance(raw, list):
        log.error("config_invalid_rules", err="RULES must be a JSON list")
        raw = None

    rules = parse_rules(raw or [], defaults)
    if _flag(env, "DEFAULT_DETECTORS", True) and all(isinstance(r, AggregationRule) for r in rules):
        taken = {r.name for r in rules}
        rules += [r for r in default_rules() if r.name not in taken]
    return rules


def telegram_destinations(env: Mapping[str, str]) -> dict[str, TelegramConfig]:
    """
    channel -> TelegramConfig. Per-channel TELEGRAM_BOT_TOKEN_<CHANNEL> /
    TELEGRAM_CHAT_ID_<CHANNEL> win; otherwise `aggregate` falls back to
    TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID and every other channel to the
    *_2 pair. Channels left without a destination are omitted (no-op).
    """
    out: dict[str, TelegramConfig] = {}
    for ch in CHANNELS:
        suffix = ch.upper()
        fallback = "" if ch == "aggregate" else "_2"
        token = _str(env, f"TELEGRAM_BOT_TOKEN_{suffix}") or _str(env, f"TELEGRAM_BOT_TOKEN{fallback}")
        chat = _str(env, f"TELEGRAM_CHAT_ID_{suffix}") or _str(env, f"TELEGRAM_CHAT_ID{fallback}")
        if token and chat:
            out[ch] = TelegramConfig(
                bot_token=token,
                chat_id=chat,
                parse_mode=_str(env, "TELEGRAM_PARSE_MODE") or None,
            )
    return out


@dataclass(slots=True)
class AppConfig:
    host: str = "0.0.0.0"
    port: int = 10000
    alert_secret: str = ""
    check_ms: int = 1000
    window_seconds: float = 45
    cooldown_seconds: float = 60
    dedupe_ttl_seconds: float = 5
    dedupe_bucket_seconds: float = 1
    timezone: str = "America/New_York"
    level_sources: dict[str, LevelSource] = field(default_factory=lambda: dict(DEFAULT_LEVEL_SOURCES))
    rules: list[Rule] = field(default_factory=list)
    console_echo: bool = True
    snapshot_path: Optional[str] = None
    snapshot_redis_url: Optional[str] = None
    snapshot_key: str = "correlator:snapshot"
    snapshot_interval_s: float = 1.0
    telegram: dict[str, TelegramConfig] = field(default_factory=dict)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, *, dotenv: bool = True) -> "AppConfig":
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        window = _num(env, "WINDOW_SECONDS", 45)
        cooldown = _num(env, "COOLDOWN_SECONDS", 60)
        levels_raw = _str(env, "LEVEL_SOURCES")
        levels_json = _json(levels_raw, "LEVEL_SOURCES") if levels_raw else None
        levels = parse_level_sources(levels_json if isinstance(levels_json, Mapping) else None)

        return cls(
            host=_str(env, "HOST", "0.0.0.0"),
            port=int(_num(env, "PORT", 10000)),
            alert_secret=_str(env, "ALERT_SECRET"),
            check_ms=int(_num(env, "CHECK_MS", 1000)),
            window_seconds=window,
            cooldown_seconds=cooldown,
            dedupe_ttl_seconds=_num(env, "DEDUPE_TTL_SECONDS", 5),
            dedupe_bucket_seconds=_num(env, "DEDUPE_BUCKET_SECONDS", 1),
            timezone=_str(env, "TIMEZONE", "America/New_York"),
            level_sources=levels,
            rules=load_rules(env, RuleDefaults(window_seconds=window, cooldown_seconds=cooldown)),
            console_echo=_flag(env, "CONSOLE_ECHO", True),
            snapshot_path=_str(env, "SNAPSHOT_PATH") or None,
            snapshot_redis_url=_str(env, "SNAPSHOT_REDIS_URL") or None,
            snapshot_key=_str(env, "SNAPSHOT_KEY", "correlator:snapshot"),
            snapshot_interval_s=_num(env, "SNAPSHOT_INTERVAL_SECONDS", 1.0),
            telegram=telegram_destinations(env),
            log_level=_str(env, "LOG_LEVEL", "INFO").upper(),
        )
