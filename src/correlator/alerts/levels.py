from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import structlog

from correlator.utils.types import Alert

log = structlog.get_logger("levels")

@dataclass(frozen=True, slots=True)
class CanonicalLevel:
    """
    Level-like attribute folded into a {level, -level} pair so that +1.29 and
    -1.29 compare as the same structural level.
    """
    text: Optional[str] = None
    signed: Optional[float] = None
    values: frozenset[float] = frozenset()

    def __bool__(self) -> bool:
        return bool(self.values)

    def intersects(self, other: "CanonicalLevel") -> bool:
        return bool(self.values & other.values)

    @property
    def magnitude(self) -> Optional[float]:
        return abs(self.signed) if self.signed is not None else None

EMPTY = CanonicalLevel()

@dataclass(frozen=True, slots=True)
class LevelSource:
    """Where a group's level comes from: an attribute name or a fixed value."""
    attribute: Optional[str] = None
    fixed: Optional[str] = None

DEFAULT_LEVEL_SOURCES: dict[str, LevelSource] = {
    "F": LevelSource(fixed="1.30"),
    "G": LevelSource(attribute="fib_level"),
    "H": LevelSource(attribute="level"),
}

def _to_float(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        v = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    if v != v or v in (float("inf"), float("-inf")):
        return None
    return v

def parse_level_sources(raw: Mapping[str, Any] | None) -> dict[str, LevelSource]:
    """
    {"F": {"fixed": "1.30"}, "G": "fib_level", "H": {"attribute": "level"}}
    A bare string means attribute name. Unusable entries are skipped.
    """
    if not raw:
        return dict(DEFAULT_LEVEL_SOURCES)
    out: dict[str, LevelSource] = {}
    for group, src in raw.items():
        if isinstance(src, str) and src.strip():
            out[str(group)] = LevelSource(attribute=src.strip())
        elif isinstance(src, Mapping) and (src.get("attribute") or src.get("fixed") is not None):
            out[str(group)] = LevelSource(
                attribute=src.get("attribute") or None,
                fixed=None if src.get("fixed") is None else str(src.get("fixed")),
            )
        else:
            log.warning("level_source_ignored", group=group, source=src)
    return out


class Canonicalizer:
    def __init__(self, sources: Optional[Mapping[str, LevelSource]] = None):
        self.sources = dict(DEFAULT_LEVEL_SOURCES if sources is None else sources)

    def __call__(self, alert: Alert) -> CanonicalLevel:
        return self.canonicalize(alert.group, alert.attributes)

    def canonicalize(self, group: str, attributes: Mapping[str, Any]) -> CanonicalLevel:
        src = self.sources.get(group)
        if src is None:
            return EMPTY
        text = src.fixed if src.fixed is not None else attributes.get(src.attribute or "")
        v = _to_float(text)
        if v is None:
            return EMPTY
        v = round(v, 6)
        return CanonicalLevel(text=str(text).strip(), signed=v, values=frozenset({v, -v}))
