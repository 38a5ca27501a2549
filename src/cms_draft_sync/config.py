"""Runtime settings read from environment variables.

Dev runs against the in-memory substrate; every other environment persists
cache and drafts in Firestore unless ``CMS_STORE`` says otherwise.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, model_validator


class StoreBackend(str, Enum):
    memory = "memory"
    file = "file"
    firestore = "firestore"


class SyncSettings(BaseModel):
    environment: str = "dev"
    project_id: str | None = None
    github_owner: str = ""
    github_repo: str = ""
    github_token: str | None = None
    draft_branch: str = "cms-draft"
    content_root: str = "src/content"
    default_locale: str = "en"
    store: StoreBackend | None = None
    store_path: Path = Path(".cms/store.json")
    schema_path: Path | None = None
    http_timeout: float = 30.0
    max_retries: int = 3

    @model_validator(mode="after")
    def _defaults(self) -> "SyncSettings":
        if self.store is None:
            self.store = StoreBackend.memory if self.environment == "dev" else StoreBackend.firestore
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncSettings":
        env = os.environ if environ is None else environ

        data: dict[str, object] = {
            "environment": env.get("ENVIRONMENT", "dev"),
            "project_id": env.get("PROJECT_ID") or None,
            "github_owner": env.get("GITHUB_OWNER", ""),
            "github_repo": env.get("GITHUB_REPO", ""),
            "github_token": env.get("GITHUB_TOKEN") or None,
            "draft_branch": env.get("CMS_DRAFT_BRANCH", "cms-draft"),
            "content_root": env.get("CMS_CONTENT_ROOT", "src/content").strip("/"),
            "default_locale": env.get("CMS_DEFAULT_LOCALE", "en"),
        }
        if env.get("CMS_STORE"):
            data["store"] = env["CMS_STORE"]
        if env.get("CMS_STORE_PATH"):
            data["store_path"] = env["CMS_STORE_PATH"]
        if env.get("CMS_SCHEMA_PATH"):
            data["schema_path"] = env["CMS_SCHEMA_PATH"]
        if env.get("CMS_HTTP_TIMEOUT"):
            data["http_timeout"] = env["CMS_HTTP_TIMEOUT"]
        if env.get("CMS_MAX_RETRIES"):
            data["max_retries"] = env["CMS_MAX_RETRIES"]

        return cls.model_validate(data)


__all__ = ["SyncSettings", "StoreBackend"]
