# app/routers/leaderboard.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from app.deps import (
    get_cache,
    get_store,
    get_current_user_id,
    APP_TIMEZONE,
    LEADERBOARD_TOP_N,
    LEADERBOARD_POLL_SECONDS,
)
from app.docstore import DocumentStore, DocumentStoreError, Snapshot, SERVER_TIMESTAMP
from app.docstore.normalize import score_from_doc, rewards_from_docs
from app.reducers.leaderboard import best_per_actor, rank, day_window, in_window, to_rows
from app.schemas import LeaderboardResponse, LeaderboardRow, ScoreSubmission
from app.services.cache import TTLCache, CacheKeys, cached
from app.services.logging import get_logger, log_kv

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])
LOG = get_logger("leaderboard")

COLLECTION = "leaderboard"


def _today_window():
    tz = ZoneInfo(APP_TIMEZONE)
    return day_window(datetime.now(tz).date(), tz)


async def _rewards(cache: TTLCache, store: DocumentStore) -> Dict[int, str]:
    async def load():
        return rewards_from_docs(await store.query("rewards"))

    try:
        return await cached(cache, CacheKeys.REWARDS, load)
    except DocumentStoreError as e:
        # the board still renders, just without prizes
        log_kv(LOG, logging.WARNING, "rewards.load_failed", err=str(e))
        return {}


def _board(
    snaps: Iterable[Snapshot],
    start: datetime,
    end: datetime,
    rewards: Dict[int, str],
    limit: int,
) -> List[LeaderboardRow]:
    entries = [e for e in (score_from_doc(s) for s in snaps) if e is not None]
    return to_rows(rank(best_per_actor(in_window(entries, start, end))), rewards, limit)


@router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    store_id: str = Query(..., min_length=1, max_length=128),
    limit: int = Query(LEADERBOARD_TOP_N, ge=1, le=100),
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
):
    start, end = _today_window()
    try:
        snaps = await store.query(COLLECTION, where=[("storeId", "==", store_id)])
    except DocumentStoreError as e:
        log_kv(LOG, logging.WARNING, "leaderboard.load_failed", store_id=store_id, err=str(e))
        snaps = []

    rows = _board(snaps, start, end, await _rewards(cache, store), limit)
    log_kv(LOG, logging.INFO, "leaderboard.loaded", store_id=store_id, docs=len(snaps), rows=len(rows))
    return LeaderboardResponse(store_id=store_id, window_start=start, window_end=end, entries=rows)


@router.post("", status_code=201)
async def submit_score(
    payload: ScoreSubmission,
    user_id: str = Depends(get_current_user_id),
    store: DocumentStore = Depends(get_store),
):
    score = int(payload.score) if float(payload.score).is_integer() else payload.score
    try:
        doc_id = await store.add(COLLECTION, {
            "userId": user_id,
            "userName": (payload.user_name or "").strip(),
            "storeId": payload.store_id,
            "score": score,
            "timestamp": SERVER_TIMESTAMP,
        })
    except DocumentStoreError:
        raise HTTPException(status_code=503, detail="Could not record the score, try again.")
    log_kv(LOG, logging.INFO, "leaderboard.submitted", store_id=payload.store_id, user_id=user_id, score=score)
    return {"id": doc_id}


@router.get("/live")
async def stream_leaderboard(
    store_id: str = Query(..., min_length=1, max_length=128),
    limit: int = Query(LEADERBOARD_TOP_N, ge=1, le=100),
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
):
    """NDJSON: one full board per change of the store's leaderboard documents."""

    async def boards():
        rewards = await _rewards(cache, store)
        snapshots = store.watch(
            COLLECTION,
            where=[("storeId", "==", store_id)],
            poll_interval=LEADERBOARD_POLL_SECONDS,
        )
        try:
            async for snaps in snapshots:
                start, end = _today_window()
                board = LeaderboardResponse(
                    store_id=store_id,
                    window_start=start,
                    window_end=end,
                    entries=_board(snaps, start, end, rewards, limit),
                )
                yield board.model_dump_json() + "\n"
        except DocumentStoreError as e:
            log_kv(LOG, logging.WARNING, "leaderboard.live_failed", store_id=store_id, err=str(e))
        finally:
            await snapshots.aclose()

    return StreamingResponse(boards(), media_type="application/x-ndjson")
