from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CommitAuthor(BaseModel):
    name: str
    avatar_url: str | None = None


class CommitRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    message: str
    author: CommitAuthor
    date: datetime | None = None


class Branch(BaseModel):
    name: str
    head_sha: str


class FileStatus(str, Enum):
    added = "added"
    modified = "modified"
    removed = "removed"
    renamed = "renamed"
    copied = "copied"
    changed = "changed"
    unchanged = "unchanged"


class FileChange(BaseModel):
    filename: str
    status: FileStatus
    additions: int = 0
    deletions: int = 0
    patch: str | None = None
    previous_filename: str | None = None


class BranchComparison(BaseModel):
    base: str
    head: str
    ahead_by: int = 0
    behind_by: int = 0
    files: list[FileChange] = Field(default_factory=list)

    def changed_paths(self) -> set[str]:
        return {f.filename for f in self.files if f.status != FileStatus.unchanged}

    def file(self, path: str) -> FileChange | None:
        for change in self.files:
            if change.filename == path:
                return change
        return None


__all__ = [
    "CommitAuthor",
    "CommitRecord",
    "Branch",
    "FileStatus",
    "FileChange",
    "BranchComparison",
]
