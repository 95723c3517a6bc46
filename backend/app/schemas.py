from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Score = Union[int, float]


# ---------- Reducer inputs (typed at the document-store boundary) ----------

class ServiceRecord(BaseModel):
    """
    One offering from the `service_services` collection. Several providers
    can list the same logical service, so identity is (category, name),
    not `id`. Unknown document fields are kept as extras for rendering.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str
    name: Optional[str] = None
    category_master_id: Optional[str] = Field(None, alias="categoryMasterId")
    master_category_id: Optional[str] = Field(None, alias="masterCategoryId")

    @property
    def category_key(self) -> str:
        return self.category_master_id or self.master_category_id or ""


class ScoreEntry(BaseModel):
    """One scored attempt by one actor."""
    model_config = ConfigDict(frozen=True)

    actor_id: str
    display_name: str = ""
    score: Score = 0
    occurred_at: datetime


# ---------- /catalog ----------

class ServicesResponse(BaseModel):
    services: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0


# ---------- /leaderboard ----------

class ScoreSubmission(BaseModel):
    store_id: str = Field(..., min_length=1, max_length=128)
    score: float = Field(..., ge=0)
    user_name: Optional[str] = Field(None, max_length=64)


class LeaderboardRow(BaseModel):
    position: int
    user_id: str
    display_name: str
    score: Score
    occurred_at: datetime
    reward: Optional[str] = None


class LeaderboardResponse(BaseModel):
    """What the leaderboard screen renders for one store and one day."""
    store_id: str
    window_start: datetime
    window_end: datetime
    entries: List[LeaderboardRow] = Field(default_factory=list)
