# app/routers/cache.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.deps import get_cache
from app.services.cache import TTLCache
from app.services.logging import get_logger, log_kv

router = APIRouter(prefix="/cache", tags=["cache"])
LOG = get_logger("cache")


@router.delete("")
async def clear_cache(cache: TTLCache = Depends(get_cache)):
    cache.clear()
    log_kv(LOG, logging.INFO, "cache.cleared")
    return {"ok": True}


@router.delete("/{key}")
async def delete_cache_key(key: str, cache: TTLCache = Depends(get_cache)):
    cache.delete(key)
    log_kv(LOG, logging.INFO, "cache.deleted", key=key)
    return {"ok": True}


@router.post("/sweep")
async def sweep_cache(cache: TTLCache = Depends(get_cache)):
    evicted = cache.sweep()
    log_kv(LOG, logging.INFO, "cache.sweep", evicted=evicted, remaining=len(cache), manual=1)
    return {"evicted": evicted}
