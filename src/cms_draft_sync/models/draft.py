from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DraftChange(BaseModel):
    item_key: str
    base_data: dict[str, Any] | None = None
    pending_data: dict[str, Any]
    dirty: bool = True
    updated_at: datetime = Field(default_factory=_utcnow)


__all__ = ["DraftChange"]
