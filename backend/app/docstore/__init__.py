# app/docstore/__init__.py
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import Document
from app.services.logging import get_logger, log_kv

LOG = get_logger("docstore")

# (field, op, value), e.g. ("storeId", "==", "s1")
Filter = Tuple[str, str, Any]

SERVER_TIMESTAMP = object()  # replaced by the write time, ISO-8601 UTC


class DocumentStoreError(Exception):
    """A read or write against the document store failed."""


@dataclass(frozen=True)
class Snapshot:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    update_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op == "in":
        return left in right
    if left is None:
        return False
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {op}")


def _matches(data: Dict[str, Any], where: Iterable[Filter]) -> bool:
    return all(_compare(op, data.get(fld), value) for fld, op, value in where)


def _order_key(value: Any) -> Tuple[int, Any]:
    # mixed types sort by type first: bools < numbers < strings < everything else
    if isinstance(value, bool):
        return 0, value
    if isinstance(value, (int, float)):
        return (1, float("-inf")) if math.isnan(value) else (1, value)
    if isinstance(value, str):
        return 2, value
    return 3, repr(value)


def _resolve(data: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}


def _snapshot(row: Document) -> Snapshot:
    return Snapshot(id=row.doc_id, data=dict(row.data or {}), update_time=row.updated_at)


class DocumentStore:
    """
    Collections of JSON documents on top of the SQL database.

    Filtering and ordering happen in Python after the collection is loaded,
    which keeps the semantics identical across database backends. Each call
    opens its own session, so one store instance is shared app-wide.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    @asynccontextmanager
    async def _session(self, op: str, collection: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except SQLAlchemyError as e:
            log_kv(LOG, logging.ERROR, "docstore.error", op=op, collection=collection, err=e.__class__.__name__)
            raise DocumentStoreError(f"{op} on '{collection}' failed: {e.__class__.__name__}") from e

    async def _row(self, session: AsyncSession, collection: str, doc_id: str) -> Optional[Document]:
        res = await session.execute(
            select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
        )
        return res.scalar_one_or_none()

    # ---------- reads ----------
    async def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        async with self._session("get", collection) as session:
            row = await self._row(session, collection, doc_id)
            return _snapshot(row) if row else None

    async def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        async with self._session("query", collection) as session:
            res = await session.execute(
                select(Document).where(Document.collection == collection).order_by(Document.id)
            )
            rows = res.scalars().all()

        snaps = [_snapshot(r) for r in rows if _matches(r.data or {}, where)]
        if order_by:
            present = [s for s in snaps if s.data.get(order_by) is not None]
            missing = [s for s in snaps if s.data.get(order_by) is None]
            present.sort(key=lambda s: _order_key(s.data[order_by]), reverse=descending)
            snaps = present + missing
        if limit is not None:
            snaps = snaps[:limit]
        return snaps

    # ---------- writes ----------
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        async with self._session("add", collection) as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=_resolve(data)))
            await session.commit()
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        data = _resolve(data)
        async with self._session("set", collection) as session:
            row = await self._row(session, collection, doc_id)
            if row is None:
                session.add(Document(collection=collection, doc_id=doc_id, data=data))
            else:
                # assign a new dict so the JSON column is flagged dirty
                row.data = {**(row.data or {}), **data} if merge else data
            await session.commit()

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._session("delete", collection) as session:
            await session.execute(
                delete(Document).where(Document.collection == collection, Document.doc_id == doc_id)
            )
            await session.commit()

    # ---------- live queries ----------
    async def watch(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        poll_interval: float = 2.0,
    ) -> AsyncIterator[List[Snapshot]]:
        """
        Yield the full result set now, then again each time it changes.
        Every yielded list replaces the previous one. Closing or cancelling
        the iterator unsubscribes.
        """
        last: Optional[List[Tuple[str, Dict[str, Any]]]] = None
        try:
            while True:
                snaps = await self.query(collection, where, order_by, descending)
                fingerprint = [(s.id, s.data) for s in snaps]
                if fingerprint != last:
                    last = fingerprint
                    yield snaps
                await asyncio.sleep(poll_interval)
        finally:
            log_kv(LOG, logging.INFO, "snapshot.unsubscribed", collection=collection)
