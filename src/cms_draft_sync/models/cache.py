from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    key: str
    value: Any
    origin_sha: str
    fetched_at: datetime = Field(default_factory=_utcnow)


__all__ = ["CacheEntry"]
