"""
Pytest configuration and fixtures.
"""
import os
import tempfile

# Settings are read when app.deps is imported, so set them first.
_TMP_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'app.db')}"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.deps import Base, SessionLocal
from app.docstore import DocumentStore
from app.models import Document


class FakeClock:
    """Manually advanced monotonic clock for cache tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def store(tmp_path):
    """A DocumentStore on its own throwaway SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'docs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield DocumentStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


async def _purge_documents():
    async with SessionLocal() as session:
        await session.execute(delete(Document))
        await session.commit()


@pytest.fixture
def client():
    """TestClient with the app lifespan running (tables, cache, sweeper) and an empty store."""
    from app.main import app

    with TestClient(app) as c:
        c.portal.call(_purge_documents)
        yield c


@pytest.fixture
def seed(client):
    """seed(collection, data, doc_id=None) -> doc_id, written through the app's store."""
    store = client.app.state.store

    def _seed(collection, data, doc_id=None):
        if doc_id is not None:
            client.portal.call(store.set, collection, doc_id, data)
            return doc_id
        return client.portal.call(store.add, collection, data)

    return _seed
