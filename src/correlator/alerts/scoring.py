from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from correlator.alerts.levels import CanonicalLevel

@dataclass(slots=True)
class EpisodeScoring:
    """
    Weighted confidence rubric for a completed episode.

    - elapsed_points: [(max_seconds, points), ...] ascending; first bucket
      with elapsed <= max_seconds wins, nothing if elapsed exceeds them all
    - end_group_points / start_group_points: group -> points
    - end_level_points: level magnitude (as "1.29") -> points
    Notifications scoring below min_score are suppressed.
    """
    min_score: float = 0.0
    elapsed_points: list[tuple[float, float]] = field(default_factory=list)
    end_group_points: dict[str, float] = field(default_factory=dict)
    end_level_points: dict[str, float] = field(default_factory=dict)
    start_group_points: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "EpisodeScoring":
        if not isinstance(d, Mapping):
            raise ValueError("scoring must be an object")
        buckets = []
        for item in d.get("elapsedPoints") or d.get("elapsed_points") or []:
            if isinstance(item, Mapping):
                buckets.append((float(item["maxSeconds"]), float(item["points"])))
            else:
                mx, pts = item
                buckets.append((float(mx), float(pts)))
        buckets.sort(key=lambda b: b[0])
        return cls(
            min_score=float(d.get("minScore", d.get("min_score", 0.0))),
            elapsed_points=buckets,
            end_group_points=_points(d.get("endGroupPoints") or d.get("end_group_points")),
            end_level_points={
                level_key(k): v
                for k, v in _points(d.get("endLevelPoints") or d.get("end_level_points")).items()
            },
            start_group_points=_points(d.get("startGroupPoints") or d.get("start_group_points")),
        )


def _points(raw: Optional[Mapping[str, Any]]) -> dict[str, float]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("points must be an object of name -> points")
    return {str(k): float(v) for k, v in raw.items()}

def level_key(v: Any) -> str:
    """Normalize a level to its unsigned rubric key: '-1.290' -> '1.29'."""
    try:
        return f"{abs(float(v)):g}"
    except (TypeError, ValueError):
        return str(v)

def score_episode(
    rubric: EpisodeScoring,
    *,
    elapsed_ms: int,
    start_group: str,
    end_group: str,
    end_level: CanonicalLevel,
) -> float:
    score = 0.0
    elapsed_s = elapsed_ms / 1000.0
    for max_s, pts in rubric.elapsed_points:
        if elapsed_s <= max_s:
            score += pts
            break
    score += rubric.end_group_points.get(end_group, 0.0)
    if end_level.magnitude is not None:
        score += rubric.end_level_points.get(level_key(end_level.magnitude), 0.0)
    score += rubric.start_group_points.get(start_group, 0.0)
    return score
