from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from correlator.alerts.levels import CanonicalLevel
from correlator.utils.time import fmt_duration, fmt_ts
from correlator.utils.types import Alert

def _level_str(level: Optional[CanonicalLevel]) -> str:
    if not level:
        return "n/a"
    return f"±{level.magnitude:g}"

def format_aggregation(
    rule_name: str,
    total: int,
    window_seconds: float,
    counts: Mapping[str, int],
    recent: Mapping[str, Sequence[Alert]],
) -> str:
    lines = [f'🚨 Rule "{rule_name}" fired: {total} alerts in last {window_seconds:g}s']
    for g, c in counts.items():
        lines.append(f"• {g} count: {c}")
    lines.append("")
    lines.append("Recent alerts:")
    for g, alerts in recent.items():
        for a in alerts:
            lines.append(f"[{g}] symbol={a.symbol} price={a.get('price')} time={a.get('time')}")
    return "\n".join(lines)

def format_episode(
    *,
    symbol: str,
    tier: str,
    start: Alert,
    start_level: CanonicalLevel,
    end: Alert,
    end_level: CanonicalLevel,
    elapsed_ms: int,
    score: Optional[float],
    tz_name: str,
) -> str:
    lines = [
        f"📌 EPISODE COMPLETE ({tier.upper()})",
        f"Symbol: {symbol}",
        f"Start Group: {start.group}" + (f" ({_level_str(start_level)})" if start_level else ""),
        f"Start Time: {fmt_ts(start.timestamp, tz_name)}",
        f"End Group: {end.group}" + (f" ({_level_str(end_level)})" if end_level else ""),
        f"End Time: {fmt_ts(end.timestamp, tz_name)}",
        f"Elapsed: {fmt_duration(elapsed_ms)}",
    ]
    if score is not None:
        lines.append(f"Score: {score:g}")
    return "\n".join(lines)

def format_gap(*, symbol: str, group: str, severity: str, gap_ms: int, threshold_s: float,
               ts: int, tz_name: str) -> str:
    return (
        f"⏱ GAP {severity.upper()}\n"
        f"Symbol: {symbol}\n"
        f"Group: {group}\n"
        f"First qualifying alert in over {threshold_s / 3600:g} hours\n"
        f"Gap: {gap_ms / 3_600_000:.2f} hours\n"
        f"Time: {fmt_ts(ts, tz_name)}"
    )

def format_transition(*, symbol: str, from_group: str, from_level: str, to_group: str,
                      to_level: str, elapsed_ms: int, ts: int, tz_name: str) -> str:
    return (
        f"🔀 LEVEL TRANSITION\n"
        f"Symbol: {symbol}\n"
        f"From: {from_group} @ {from_level}\n"
        f"To: {to_group} @ {to_level}\n"
        f"Elapsed: {fmt_duration(elapsed_ms)}\n"
        f"Time: {fmt_ts(ts, tz_name)}"
    )

def format_match(*, rule_name: str, symbol: str, first: Alert, second: Alert,
                 level: Optional[CanonicalLevel], tz_name: str) -> str:
    head = f"🎯 {rule_name.upper()} (Same Level)" if level else f"🔁 {rule_name.upper()}"
    lines = [head, f"Symbol: {symbol}"]
    if level:
        lines.append(f"Levels: {_level_str(level)}")
    lines += [
        f"Groups: {first.group} ↔ {second.group}",
        "Times:",
        f" - {first.group}: {fmt_ts(first.timestamp, tz_name)}",
        f" - {second.group}: {fmt_ts(second.timestamp, tz_name)}",
    ]
    return "\n".join(lines)

def format_burst(*, rule_name: str, entries: Sequence[tuple[str, int]], total: int,
                 window_seconds: float, part: int, parts: int, tz_name: str) -> str:
    head = f"📸 BURST {rule_name}: {total} symbols in {window_seconds:g}s"
    if parts > 1:
        head += f" (part {part}/{parts})"
    lines = [head]
    for sym, ts in entries:
        lines.append(f"• {sym} @ {fmt_ts(ts, tz_name)}")
    return "\n".join(lines)

def format_oneshot(*, rule_name: str, symbol: str, arming_group: str, armed_at: int,
                   completing: Alert, tz_name: str) -> str:
    return (
        f"✅ {rule_name.upper()} COMPLETE\n"
        f"Symbol: {symbol}\n"
        f"Armed by: {arming_group} @ {fmt_ts(armed_at, tz_name)}\n"
        f"Completed by: {completing.group} @ {fmt_ts(completing.timestamp, tz_name)}\n"
        f"Elapsed: {fmt_duration(completing.timestamp - armed_at)}"
    )

def format_cross(*, rule_name: str, group: str, first_symbol: str, first_ts: int,
                 second_symbol: str, second_ts: int, tz_name: str) -> str:
    return (
        f"🔗 {rule_name.upper()}\n"
        f"Group: {group}\n"
        f"Symbols: {first_symbol} ↔ {second_symbol}\n"
        f" - {first_symbol}: {fmt_ts(first_ts, tz_name)}\n"
        f" - {second_symbol}: {fmt_ts(second_ts, tz_name)}\n"
        f"Gap: {fmt_duration(abs(second_ts - first_ts))}"
    )

def format_lookback(*, rule_name: str, tier: str, symbol: str, anchor: Alert, trigger: Alert,
                    gap_ms: int, tz_name: str) -> str:
    return (
        f"↩️ {rule_name.upper()} [{tier}]\n"
        f"Symbol: {symbol}\n"
        f"Anchor: {anchor.group} @ {fmt_ts(anchor.timestamp, tz_name)}\n"
        f"Trigger: {trigger.group} @ {fmt_ts(trigger.timestamp, tz_name)}\n"
        f"Gap: {fmt_duration(gap_ms)}"
    )

def format_strong_signal(alert: Alert, direction: str, momentum: str) -> str:
    level = alert.get("level") or alert.get("fib_level") or "n/a"
    return (
        f"🔥 STRONG SIGNAL\n"
        f"Symbol: {alert.symbol}\n"
        f"Level: {level}\n"
        f"Direction: {direction}\n"
        f"Momentum: {momentum}\n"
        f"Time: {alert.get('time')}"
    )

def chunked(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]
