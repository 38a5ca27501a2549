from __future__ import annotations

import json
from collections import Counter, defaultdict
from typing import Any

import pytest

from cms_draft_sync.cache import CacheLayer
from cms_draft_sync.coordinator import SyncCoordinator
from cms_draft_sync.drafts import DraftOverlayStore
from cms_draft_sync.errors import ConflictError, NotFoundError
from cms_draft_sync.kv_store import InMemoryKeyValueStore
from cms_draft_sync.models.commit import (
    Branch,
    BranchComparison,
    CommitAuthor,
    CommitRecord,
    FileChange,
    FileStatus,
)
from cms_draft_sync.models.schema import ComponentSchema, FieldDeclaration, FieldType, InputType
from cms_draft_sync.paths import ContentPaths
from cms_draft_sync.schema_registry import SchemaRegistry
from cms_draft_sync.service import ContentService
from cms_draft_sync.validation import ValidationEngine


class FakeRemoteStore:
    """In-memory repository with call counting and scripted failures."""

    def __init__(self, *, main: str = "main", head_sha: str = "abc123") -> None:
        self.main = main
        self.files: dict[str, dict[str, bytes]] = {main: {}}
        self.commits: dict[str, list[CommitRecord]] = {main: []}
        self.commit_paths: dict[str, str | None] = {}
        self.calls: Counter[str] = Counter()
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self._sequence = 0
        self._add_commit(main, head_sha, "Initial content", None)

    # -- test helpers ---------------------------------------------------

    def fail(self, method: str, *errors: Exception) -> None:
        self.failures[method].extend(errors)

    def seed(self, path: str, document: dict[str, Any], branch: str | None = None) -> None:
        self.files[branch or self.main][path] = json.dumps(document).encode("utf-8")

    def advance_main(self, sha: str) -> None:
        self._add_commit(self.main, sha, "External change", None)

    def head(self, branch: str) -> str:
        return self.commits[branch][0].sha

    def document(self, path: str, branch: str) -> dict[str, Any] | None:
        raw = self.files.get(branch, {}).get(path)
        return json.loads(raw) if raw is not None else None

    def _record(self, method: str) -> None:
        self.calls[method] += 1
        if self.failures[method]:
            raise self.failures[method].pop(0)

    def _add_commit(self, branch: str, sha: str, message: str, path: str | None) -> None:
        record = CommitRecord(sha=sha, message=message, author=CommitAuthor(name="editor"))
        self.commits[branch].insert(0, record)
        self.commit_paths[sha] = path

    def _require(self, branch: str) -> None:
        if branch not in self.files:
            raise NotFoundError(f"Branch {branch} not found")

    # -- RemoteContentStore ---------------------------------------------

    async def branch_exists(self, name: str) -> bool:
        self._record("branch_exists")
        return name in self.files

    async def get_main_branch(self) -> str:
        self._record("get_main_branch")
        return self.main

    async def get_branch(self, name: str) -> Branch:
        self._record("get_branch")
        self._require(name)
        return Branch(name=name, head_sha=self.head(name))

    async def create_branch(self, name: str, from_sha: str) -> Branch:
        self._record("create_branch")
        if name in self.files:
            raise ConflictError(f"Reference refs/heads/{name} already exists")
        self.files[name] = dict(self.files[self.main])
        self.commits[name] = list(self.commits[self.main])
        return Branch(name=name, head_sha=from_sha)

    async def delete_branch(self, name: str) -> None:
        self._record("delete_branch")
        self._require(name)
        del self.files[name]
        del self.commits[name]

    async def get_file_content(self, path: str, branch: str) -> bytes | None:
        self._record("get_file_content")
        self._require(branch)
        return self.files[branch].get(path)

    async def commit_file(self, path: str, content: bytes, message: str, branch: str) -> str:
        self._record("commit_file")
        self._require(branch)
        self._sequence += 1
        sha = f"commit{self._sequence:03d}"
        self.files[branch][path] = content
        self._add_commit(branch, sha, message, path)
        return sha

    async def get_commits(
        self, branch: str, page: int = 1, per_page: int = 30, *, path: str | None = None
    ) -> list[CommitRecord]:
        self._record("get_commits")
        self._require(branch)
        commits = [c for c in self.commits[branch] if path is None or self.commit_paths.get(c.sha) == path]
        start = (page - 1) * per_page
        return commits[start : start + per_page]

    async def compare_branches(self, base: str, head: str) -> BranchComparison:
        self._record("compare_branches")
        self._require(base)
        self._require(head)
        base_files, head_files = self.files[base], self.files[head]
        changes = []
        for path in sorted(set(base_files) | set(head_files)):
            if path not in base_files:
                changes.append(FileChange(filename=path, status=FileStatus.added))
            elif path not in head_files:
                changes.append(FileChange(filename=path, status=FileStatus.removed))
            elif base_files[path] != head_files[path]:
                changes.append(FileChange(filename=path, status=FileStatus.modified))
        base_shas = {c.sha for c in self.commits[base]}
        ahead = sum(1 for c in self.commits[head] if c.sha not in base_shas)
        return BranchComparison(base=base, head=head, ahead_by=ahead, files=changes)

    async def list_directory(self, path: str, branch: str) -> list[str]:
        self._record("list_directory")
        self._require(branch)
        prefix = f"{path}/"
        return sorted(p for p in self.files[branch] if p.startswith(prefix) and "/" not in p[len(prefix) :])


def field(value: Any, field_type: str = "input", translatable: bool = False) -> dict[str, Any]:
    return {"type": field_type, "translatable": translatable, "value": value}


def hero_component(title: Any = "Welcome", component_id: str = "hero-1", **extra: Any) -> dict[str, Any]:
    data = {"title": field(title, translatable=isinstance(title, dict))}
    data.update(extra)
    return {"id": component_id, "schemaName": "hero", "data": data}


def page_document(*components: dict[str, Any]) -> dict[str, Any]:
    return {"components": list(components)}


def build_registry() -> SchemaRegistry:
    return SchemaRegistry(
        [
            ComponentSchema(
                name="hero",
                key="hero-section",
                fields=[
                    FieldDeclaration(name="title", type=FieldType.input, label="Title", required=True, translatable=True),
                    FieldDeclaration(name="subtitle", type=FieldType.textarea, max_length=80),
                    FieldDeclaration(name="cta_url", type=FieldType.input, input_type=InputType.url),
                ],
            ),
            ComponentSchema(
                name="faq",
                fields=[
                    FieldDeclaration(
                        name="items",
                        type=FieldType.repeater,
                        label="Questions",
                        min_items=1,
                        fields=[
                            FieldDeclaration(name="question", type=FieldType.input, label="Question", required=True),
                            FieldDeclaration(name="answer", type=FieldType.richtext),
                        ],
                    )
                ],
            ),
            ComponentSchema(
                name="contact",
                fields=[
                    FieldDeclaration(
                        name="email",
                        type=FieldType.input,
                        label="Email",
                        input_type=InputType.email,
                        required=True,
                    )
                ],
            ),
        ]
    )


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def registry() -> SchemaRegistry:
    return build_registry()


@pytest.fixture
def paths() -> ContentPaths:
    return ContentPaths("src/content")


@pytest.fixture
def coordinator(remote, kv, registry, paths) -> SyncCoordinator:
    return SyncCoordinator(
        remote=remote,
        cache=CacheLayer(kv),
        drafts=DraftOverlayStore(kv),
        validator=ValidationEngine(default_locale="en"),
        schema_for=registry,
        paths=paths,
        draft_branch="cms-draft",
    )


@pytest.fixture
def service(coordinator) -> ContentService:
    return ContentService(coordinator)
