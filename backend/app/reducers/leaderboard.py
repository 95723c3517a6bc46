from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from app.schemas import LeaderboardRow, ScoreEntry

DEFAULT_TOP_N = 20


def _beats(candidate: ScoreEntry, current: ScoreEntry) -> bool:
    # higher score wins; on a tie whoever got there first keeps the spot
    if candidate.score != current.score:
        return candidate.score > current.score
    return candidate.occurred_at < current.occurred_at


def best_per_actor(entries: Iterable[ScoreEntry]) -> List[ScoreEntry]:
    """One best attempt per actor_id, in order of each actor's first appearance."""
    best: Dict[str, ScoreEntry] = {}
    for e in entries:
        prev = best.get(e.actor_id)
        if prev is None or _beats(e, prev):
            best[e.actor_id] = e
    return list(best.values())


def rank(entries: Iterable[ScoreEntry]) -> List[ScoreEntry]:
    """Score descending, earlier occurred_at first among equal scores. Not truncated."""
    return sorted(entries, key=lambda e: (-e.score, e.occurred_at))


def day_window(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """[00:00:00, 23:59:59.999999] of `day` in `tz`, returned in UTC."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def in_window(entries: Iterable[ScoreEntry], start: datetime, end: datetime) -> List[ScoreEntry]:
    return [e for e in entries if start <= e.occurred_at <= end]


def display_name(entry: ScoreEntry) -> str:
    return entry.display_name or entry.actor_id[:6]


def to_rows(
    ranked: Iterable[ScoreEntry],
    rewards: Mapping[int, str] | None = None,
    limit: Optional[int] = DEFAULT_TOP_N,
) -> List[LeaderboardRow]:
    rewards = rewards or {}
    ranked = list(ranked)
    if limit is not None:
        ranked = ranked[:limit]
    return [
        LeaderboardRow(
            position=pos,
            user_id=e.actor_id,
            display_name=display_name(e),
            score=e.score,
            occurred_at=e.occurred_at,
            reward=rewards.get(pos),
        )
        for pos, e in enumerate(ranked, start=1)
    ]
