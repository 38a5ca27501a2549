from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .commit import FileStatus
from .validation import ValidationError


class SaveStatus(str, Enum):
    saved = "SAVED"
    invalid = "INVALID"
    no_changes = "NO_CHANGES"
    failed = "FAILED"


class SaveResult(BaseModel):
    status: SaveStatus
    item_key: str
    commit_sha: str | None = None
    errors: list[ValidationError] = Field(default_factory=list)
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SaveStatus.saved, SaveStatus.no_changes)


class PublishStatus(str, Enum):
    published = "PUBLISHED"
    blocked = "BLOCKED"
    nothing_to_publish = "NOTHING_TO_PUBLISH"


class PublishResult(BaseModel):
    status: PublishStatus
    errors: list[ValidationError] = Field(default_factory=list)
    published_paths: list[str] = Field(default_factory=list)
    head_sha: str | None = None


class PageInfo(BaseModel):
    id: str
    name: str
    path: str


class FieldChange(BaseModel):
    component_id: str
    field_name: str
    locale: str | None = None
    old: Any = None
    new: Any = None


class DocumentChanges(BaseModel):
    item_key: str
    path: str
    file_status: FileStatus | None = None
    main: dict[str, Any] | None = None
    draft: dict[str, Any] | None = None
    added_components: list[str] = Field(default_factory=list)
    removed_components: list[str] = Field(default_factory=list)
    field_changes: list[FieldChange] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added_components or self.removed_components or self.field_changes)


__all__ = [
    "SaveStatus",
    "SaveResult",
    "PublishStatus",
    "PublishResult",
    "PageInfo",
    "FieldChange",
    "DocumentChanges",
]
