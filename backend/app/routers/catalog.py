# app/routers/catalog.py
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.deps import get_cache, get_store, CUISINES_CACHE_TTL_SECONDS
from app.docstore import DocumentStore, DocumentStoreError
from app.docstore.normalize import service_from_doc
from app.reducers.dedupe import dedupe_services, filter_by_category
from app.schemas import ServicesResponse
from app.services.cache import TTLCache, CacheKeys, cached
from app.services.logging import get_logger, log_kv

router = APIRouter(prefix="/catalog", tags=["catalog"])
LOG = get_logger("catalog")


async def _read_through(
    cache: TTLCache,
    key: str,
    loader: Callable[[], Awaitable[Any]],
    empty: Any,
    ttl: Optional[float] = None,
) -> Any:
    """Cached load; a failed store read is logged and served as `empty` (and not cached)."""
    try:
        return await cached(cache, key, loader, ttl)
    except DocumentStoreError as e:
        log_kv(LOG, logging.WARNING, "catalog.load_failed", key=key, err=str(e))
        return empty


# ---------- Home services ----------
@router.get("/services", response_model=ServicesResponse)
async def list_services(
    category: Optional[str] = Query(None, max_length=128),
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
):
    async def load():
        snaps = await store.query("service_services")
        return dedupe_services(service_from_doc(s) for s in snaps)

    records = await _read_through(cache, CacheKeys.SERVICES, load, empty=[])
    if category:
        records = filter_by_category(records, category)

    log_kv(LOG, logging.INFO, "services.loaded", count=len(records), category=category or "-")
    return ServicesResponse(
        services=[r.model_dump(by_alias=True) for r in records],
        count=len(records),
    )


# ---------- Restaurants ----------
@router.get("/cuisines")
async def list_cuisines(
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    async def load():
        snaps = await store.query("cuisines", order_by="priority")
        return [s.to_dict() for s in snaps]

    return await _read_through(cache, CacheKeys.CUISINES, load, empty=[], ttl=CUISINES_CACHE_TTL_SECONDS)


@router.get("/restaurants")
async def list_restaurants(
    city_id: str = Query(..., min_length=1, max_length=128),
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    async def load():
        snaps = await store.query("restaurants", where=[("cityId", "==", city_id)])
        return [s.to_dict() for s in snaps]

    return await _read_through(cache, CacheKeys.restaurants(city_id), load, empty=[])


@router.get("/restaurants/{restaurant_id}")
async def get_restaurant(
    restaurant_id: str,
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    async def load():
        snap = await store.get("restaurants", restaurant_id)
        return snap.to_dict() if snap else None

    key = CacheKeys.restaurant_details(restaurant_id)
    restaurant = await _read_through(cache, key, load, empty=None)
    if restaurant is None:
        # don't keep a negative result around
        cache.delete(key)
        raise HTTPException(status_code=404, detail="Restaurant not found.")
    return restaurant


@router.get("/restaurants/{restaurant_id}/menu")
async def list_menu_items(
    restaurant_id: str,
    cache: TTLCache = Depends(get_cache),
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    async def load():
        snaps = await store.query("menu_items", where=[("restaurantId", "==", restaurant_id)])
        return [s.to_dict() for s in snaps]

    return await _read_through(cache, CacheKeys.menu_items(restaurant_id), load, empty=[])
