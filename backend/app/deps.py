from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

# ---- Load .env early (once) ----
# backend/.env relative to this file
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)

# ---- Settings ----
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./marketplace.db")
CACHE_DEFAULT_TTL_SECONDS = float(os.getenv("CACHE_DEFAULT_TTL_SECONDS", "300"))
CACHE_SWEEP_INTERVAL_SECONDS = float(os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "600"))
CUISINES_CACHE_TTL_SECONDS = float(os.getenv("CUISINES_CACHE_TTL_SECONDS", "600"))
LEADERBOARD_TOP_N = int(os.getenv("LEADERBOARD_TOP_N", "20"))
LEADERBOARD_POLL_SECONDS = float(os.getenv("LEADERBOARD_POLL_SECONDS", "2.0"))
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

GUEST_USER_ID = "guest"


class Base(DeclarativeBase):
    pass


engine = create_async_engine(DATABASE_URL, echo=False)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---- Request-scoped accessors for lifespan-owned objects ----
def get_cache(request: Request):
    return request.app.state.cache


def get_store(request: Request):
    return request.app.state.store


# ---- Auth context ----
def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Signed-in actor id from X-User-Id, or 'guest'."""
    uid = (x_user_id or "").strip()
    return uid or GUEST_USER_ID


def require_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=401, detail="Sign-in required.")
    return uid
