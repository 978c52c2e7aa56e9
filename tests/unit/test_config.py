import json

from correlator.alerts.rules import AggregationRule, GapRule
from correlator.utils.config import AppConfig, telegram_destinations

def test_defaults_without_env():
    cfg = AppConfig.from_env({})
    assert cfg.port == 10000
    assert cfg.check_ms == 1000
    assert cfg.alert_secret == ""
    assert cfg.telegram == {}
    # no configured rules -> the built-in detector set
    assert "tracking1" in [r.name for r in cfg.rules]

def test_legacy_rules_use_window_and_cooldown_defaults():
    env = {
        "RULES": json.dumps([{"name": "bot1", "groups": ["A", "B"], "threshold": 3}]),
        "WINDOW_SECONDS": "30",
        "COOLDOWN_SECONDS": "120",
        "DEFAULT_DETECTORS": "false",
    }
    cfg = AppConfig.from_env(env)
    assert len(cfg.rules) == 1
    r = cfg.rules[0]
    assert isinstance(r, AggregationRule)
    assert (r.window_seconds, r.cooldown_seconds) == (30, 120)

def test_typed_rules_disable_builtin_set():
    env = {"RULES": json.dumps([{"type": "gap", "name": "g", "groups": ["F"]}])}
    cfg = AppConfig.from_env(env)
    assert [type(r) for r in cfg.rules] == [GapRule]

def test_rules_file(tmp_path):
    p = tmp_path / "rules.json"
    p.write_text(json.dumps([{"type": "transition", "groups": ["G"]}]))
    cfg = AppConfig.from_env({"RULES_FILE": str(p)})
    assert [r.name for r in cfg.rules] == ["transition1"]

def test_invalid_values_fall_back():
    cfg = AppConfig.from_env({"RULES": "{broken", "PORT": "abc", "LEVEL_SOURCES": "[1"})
    assert cfg.port == 10000
    assert "G" in cfg.level_sources
    assert "matching1" in [r.name for r in cfg.rules]

def test_telegram_destinations_fallbacks():
    env = {
        "TELEGRAM_BOT_TOKEN": "t1", "TELEGRAM_CHAT_ID": "c1",
        "TELEGRAM_BOT_TOKEN_2": "t2", "TELEGRAM_CHAT_ID_2": "c2",
        "TELEGRAM_BOT_TOKEN_BURST": "t3", "TELEGRAM_CHAT_ID_BURST": "c3",
    }
    d = telegram_destinations(env)
    assert d["aggregate"].destination == ("t1", "c1")
    assert d["match"].destination == ("t2", "c2")
    assert d["burst"].destination == ("t3", "c3")

def test_channel_without_destination_is_omitted():
    d = telegram_destinations({"TELEGRAM_BOT_TOKEN": "t1", "TELEGRAM_CHAT_ID": "c1"})
    assert list(d) == ["aggregate"]

def test_misc_env():
    cfg = AppConfig.from_env({
        "ALERT_SECRET": "s", "TIMEZONE": "UTC", "CONSOLE_ECHO": "0",
        "SNAPSHOT_PATH": "/tmp/snap.json", "LOG_LEVEL": "debug",
    })
    assert cfg.alert_secret == "s"
    assert cfg.timezone == "UTC"
    assert cfg.console_echo is False
    assert cfg.snapshot_path == "/tmp/snap.json"
    assert cfg.log_level == "DEBUG"
