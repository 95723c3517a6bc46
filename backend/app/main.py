# app/main.py
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.deps import (
    engine,
    Base,
    SessionLocal,
    CACHE_DEFAULT_TTL_SECONDS,
    CACHE_SWEEP_INTERVAL_SECONDS,
    CORS_ORIGINS,
)
from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.docstore import DocumentStore
from app.services.cache import TTLCache, CacheSweeper
from app.services.logging import (
    get_logger,
    new_trace_id,
    bind_trace_id,
    get_trace_id,
    log_kv,
)
from app.routers.catalog import router as catalog_router
from app.routers.leaderboard import router as leaderboard_router
from app.routers.orders import router as orders_router
from app.routers.cache import router as cache_router


# ---------- Lifespan (startup/shutdown) ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # The cache and its sweep timer live exactly as long as the app
    cache = TTLCache(default_ttl=CACHE_DEFAULT_TTL_SECONDS)
    sweeper = CacheSweeper(cache, interval=CACHE_SWEEP_INTERVAL_SECONDS)
    app.state.cache = cache
    app.state.store = DocumentStore(SessionLocal)
    sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()
        cache.clear()
        await engine.dispose()


app = FastAPI(title="Marketplace Backend", lifespan=lifespan)
LOG = get_logger("backend")
app.include_router(catalog_router)
app.include_router(leaderboard_router)
app.include_router(orders_router)
app.include_router(cache_router)

# ---------- CORS ----------
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Per-request trace middleware ----------
@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    tid = new_trace_id()
    bind_trace_id(tid)

    start = time.perf_counter()
    response: Response | None = None
    try:
        response = await call_next(request)
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log_kv(
            LOG,
            logging.INFO,
            "request.complete",
            method=request.method,
            path=request.url.path,
            status=getattr(response, "status_code", 0) if response else 0,
            duration_ms=duration_ms,
        )

    if response:
        response.headers["X-Trace-Id"] = get_trace_id()
        return response

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error before response generation."},
        headers={"X-Trace-Id": get_trace_id()},
    )


# ---------- Health ----------
@app.get("/healthz")
async def healthz(request: Request):
    return {"ok": True, "cache_entries": len(request.app.state.cache)}
