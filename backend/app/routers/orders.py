# app/routers/orders.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.deps import get_store, require_user_id
from app.docstore import DocumentStore, DocumentStoreError
from app.services.logging import get_logger, log_kv

router = APIRouter(prefix="/orders", tags=["orders"])
LOG = get_logger("orders")


@router.get("")
async def list_my_orders(
    user_id: str = Depends(require_user_id),
    store: DocumentStore = Depends(get_store),
):
    """The signed-in user's orders, newest first. Never cached: it changes per checkout."""
    try:
        snaps = await store.query(
            "orders", where=[("userId", "==", user_id)], order_by="createdAt", descending=True
        )
    except DocumentStoreError as e:
        log_kv(LOG, logging.WARNING, "orders.load_failed", user_id=user_id, err=str(e))
        snaps = []
    return {"orders": [s.to_dict() for s in snaps], "count": len(snaps)}
