import logging
import math
from typing import Any, Dict, Iterable, Optional
from datetime import datetime, timezone

from app.docstore import Snapshot
from app.schemas import ServiceRecord, ScoreEntry
from app.services.logging import get_logger, log_kv

LOG = get_logger("docstore")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts a datetime, an ISO-8601 string ('Z' allowed) or epoch seconds
    (milliseconds when the number is too large to be seconds).
    Naive values are taken as UTC. Anything else gives None.
    """
    dt: Optional[datetime] = None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        secs = value / 1000.0 if value > 1e11 else float(value)
        dt = datetime.fromtimestamp(secs, tz=timezone.utc)
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_number(value: Any):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        num = value if isinstance(value, float) else float(str(value))
    except (TypeError, ValueError):
        return 0
    # nan and inf would break score ordering
    if not math.isfinite(num):
        return 0
    return int(num) if num.is_integer() else num


def service_from_doc(snap: Snapshot) -> ServiceRecord:
    """
    Map a `service_services` document into a ServiceRecord.
    categoryMasterId is preferred; masterCategoryId is the fallback field.
    """
    data: Dict[str, Any] = {k: v for k, v in snap.data.items() if k != "id"}
    for key in ("name", "categoryMasterId", "masterCategoryId"):
        data[key] = _as_text(data.get(key))
    return ServiceRecord.model_validate({**data, "id": snap.id})


def score_from_doc(snap: Snapshot) -> Optional[ScoreEntry]:
    """
    Map a `leaderboard` document into a ScoreEntry.
    Handles both {score, userName} and the quiz shape {correctCount, totalQuestions}.
    Documents without a readable timestamp cannot be placed in a window: None.
    """
    d = snap.data
    occurred_at = parse_timestamp(d.get("timestamp"))
    if occurred_at is None:
        log_kv(LOG, logging.DEBUG, "leaderboard.doc_skipped", id=snap.id)
        return None
    raw_score = d.get("score")
    if raw_score is None:
        raw_score = d.get("correctCount", 0)
    return ScoreEntry(
        actor_id=_as_text(d.get("userId")) or "",
        display_name=_as_text(d.get("userName")) or "",
        score=_as_number(raw_score),
        occurred_at=occurred_at,
    )


def rewards_from_docs(snaps: Iterable[Snapshot]) -> Dict[int, str]:
    """position -> description; documents without an integer position are skipped."""
    out: Dict[int, str] = {}
    for s in snaps:
        pos = s.data.get("position")
        if isinstance(pos, bool):
            continue
        try:
            pos = int(pos)
        except (TypeError, ValueError):
            continue
        out[pos] = _as_text(s.data.get("description")) or ""
    return out
