from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from .cache import CacheLayer
from .diff import diff_items
from .drafts import DraftOverlayStore
from .errors import ConflictError, ContentSyncError, NetworkError, NotFoundError
from .github_store import RemoteContentStore
from .models.commit import CommitRecord, FileStatus
from .models.content import ContentItem, ContentKind, ItemKey, empty_document
from .models.results import (
    DocumentChanges,
    PageInfo,
    PublishResult,
    PublishStatus,
    SaveResult,
    SaveStatus,
)
from .models.validation import ValidationResult
from .paths import ContentPaths, page_info
from .validation import SchemaFor, ValidationEngine

logger = logging.getLogger(__name__)

PAGES_LIST_KEY = "pages:list"

_PUBLISHABLE = {
    FileStatus.added,
    FileStatus.modified,
    FileStatus.renamed,
    FileStatus.copied,
    FileStatus.changed,
}


def serialize_document(document: dict[str, Any]) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")


class SyncCoordinator:
    """Keeps the remote repository, the draft overlay and the cache consistent.

    Reads go cache-first against the current epoch; saves are validated,
    committed to the draft branch and then invalidate the cache; publish
    overwrites main with the draft branch's files.
    """

    def __init__(
        self,
        *,
        remote: RemoteContentStore,
        cache: CacheLayer,
        drafts: DraftOverlayStore,
        validator: ValidationEngine,
        schema_for: SchemaFor,
        paths: ContentPaths | None = None,
        draft_branch: str = "cms-draft",
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.drafts = drafts
        self.validator = validator
        self.schema_for = schema_for
        self.paths = paths or ContentPaths()
        self.draft_branch = draft_branch

        self._epoch_lock = asyncio.Lock()
        self._branch_lock = asyncio.Lock()
        self._path_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._freshness_task: asyncio.Task[str | None] | None = None

    @property
    def epoch(self) -> str | None:
        return self.cache.epoch

    # -- freshness ------------------------------------------------------

    async def latest_remote_sha(self) -> str:
        """Head commit of main: the cheapest staleness probe."""
        main = await self.remote.get_main_branch()
        commits = await self.remote.get_commits(main, page=1, per_page=1)
        if not commits:
            raise NotFoundError(f"No commits found on {main}")
        return commits[0].sha

    async def check_and_refresh_freshness(self) -> str | None:
        """Adopt main's latest sha as the cache epoch, dropping the cache if it moved.

        Concurrent callers share one in-flight check. On a network failure
        (after one retry) the existing cache is trusted and its epoch returned.
        """
        if self._freshness_task is None or self._freshness_task.done():
            self._freshness_task = asyncio.ensure_future(self._refresh_freshness())
        return await asyncio.shield(self._freshness_task)

    async def _refresh_freshness(self) -> str | None:
        try:
            latest = await self._retry_once(self.latest_remote_sha)
        except NetworkError as exc:
            logger.warning(
                "Freshness check failed; trusting cached data",
                extra={"epoch": self.cache.epoch, "error": str(exc)},
            )
            return self.cache.epoch

        async with self._epoch_lock:
            previous = self.cache.epoch
            if self.cache.adopt_epoch(latest):
                logger.info(
                    "Remote changed; cache epoch advanced",
                    extra={"previous_sha": previous, "sha": latest},
                )
        return latest

    @staticmethod
    async def _retry_once(call: Callable[[], Awaitable[str]]) -> str:
        try:
            return await call()
        except NetworkError:
            return await call()

    # -- reads ----------------------------------------------------------

    async def fetch_item(self, key: ItemKey) -> ContentItem:
        """Document from the cache when valid, else from main (then cached).

        A missing file yields the empty default document.
        """
        path = self.paths.path_for(key)

        async def load() -> dict[str, Any]:
            main = await self.remote.get_main_branch()
            raw = await self.remote.get_file_content(path, main)
            if raw is None:
                return empty_document(key.kind)
            return self._decode(path, raw)

        document = await self._read_through(str(key), load)
        return ContentItem.from_document(key, document)

    async def list_pages(self) -> list[PageInfo]:
        async def load() -> list[dict[str, Any]]:
            main = await self.remote.get_main_branch()
            files = await self.remote.list_directory(self.paths.pages_dir, main)
            pages = []
            for file_path in files:
                key = self.paths.key_for_path(file_path)
                if key is not None and key.kind == ContentKind.page:
                    pages.append(page_info(key.id))
            pages.sort(key=lambda page: page.name)
            return [page.model_dump() for page in pages]

        raw_pages = await self._read_through(PAGES_LIST_KEY, load)
        return [PageInfo.model_validate(page) for page in raw_pages]

    async def _read_through(self, cache_key: str, load: Callable[[], Awaitable[Any]]) -> Any:
        epoch = self.cache.epoch
        if epoch is None:
            epoch = await self.check_and_refresh_freshness()

        # Wait out any epoch swap in progress before trusting the cache
        async with self._epoch_lock:
            cached = self.cache.get(cache_key)
            epoch = self.cache.epoch
        if cached is not None:
            logger.debug("Cache hit", extra={"key": cache_key, "sha": epoch})
            return cached

        logger.debug("Cache miss", extra={"key": cache_key, "sha": epoch})
        value = await load()
        if epoch is not None:
            async with self._epoch_lock:
                # Rejected if the epoch moved while the fetch was in flight
                self.cache.set(cache_key, value, epoch)
        return value

    @staticmethod
    def _decode(path: str, raw: bytes) -> dict[str, Any]:
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ContentSyncError(f"{path} does not contain valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise ContentSyncError(f"{path} must contain a JSON object")
        return document

    # -- writes ---------------------------------------------------------

    async def ensure_draft_branch(self) -> str:
        """Create the draft branch from main's head unless it already exists."""
        async with self._branch_lock:
            if not await self.remote.branch_exists(self.draft_branch):
                await self._create_draft_branch()
        return self.draft_branch

    async def _create_draft_branch(self) -> None:
        main = await self.remote.get_main_branch()
        head = await self.remote.get_branch(main)
        try:
            await self.remote.create_branch(self.draft_branch, head.head_sha)
        except ConflictError:
            # Someone else created it first
            logger.info("Draft branch already exists", extra={"branch": self.draft_branch})
            return
        logger.info(
            "Created draft branch",
            extra={"branch": self.draft_branch, "from_branch": main, "sha": head.head_sha},
        )

    async def save(self, key: ItemKey, *, message: str | None = None) -> SaveResult:
        """Validate the pending draft for ``key`` and commit it to the draft branch.

        Validation errors are returned without any network call. Remote
        failures propagate and leave the draft in place.
        """
        change = self.drafts.get(key)
        if change is None:
            return SaveResult(status=SaveStatus.no_changes, item_key=str(key))

        item = ContentItem.from_document(key, change.pending_data)
        errors = self.validator.validate(item, self.schema_for)
        if errors:
            logger.info(
                "Save blocked by validation",
                extra={"item_key": str(key), "error_count": len(errors)},
            )
            return SaveResult(status=SaveStatus.invalid, item_key=str(key), errors=errors)

        path = self.paths.path_for(key)
        content = serialize_document(item.to_document())
        commit_message = message or self._commit_message(key)

        async with self._path_locks[path]:
            branch = await self.ensure_draft_branch()
            sha = await self._commit_to_draft(path, content, commit_message, branch)

        self.drafts.clear(key, committed=change)
        async with self._epoch_lock:
            self.cache.invalidate_all()

        logger.info("Saved draft", extra={"item_key": str(key), "path": path, "sha": sha})
        return SaveResult(status=SaveStatus.saved, item_key=str(key), commit_sha=sha)

    async def _commit_to_draft(self, path: str, content: bytes, message: str, branch: str) -> str:
        try:
            return await self.remote.commit_file(path, content, message, branch)
        except NotFoundError:
            # The branch vanished between the check and the commit
            logger.warning("Draft branch missing at commit; recreating", extra={"branch": branch})
            async with self._branch_lock:
                await self._create_draft_branch()
            return await self.remote.commit_file(path, content, message, branch)

    @staticmethod
    def _commit_message(key: ItemKey) -> str:
        if key.kind == ContentKind.globals:
            return "Update global variables via CMS"
        return f"Update {key.id} via CMS"

    # -- validation gate ------------------------------------------------

    def dirty_items(self) -> list[ContentItem]:
        items = []
        for raw_key in self.drafts.list_dirty():
            change = self.drafts.get(raw_key)
            if change is not None:
                items.append(ContentItem.from_document(ItemKey.parse(raw_key), change.pending_data))
        return items

    def validate_all_drafts(self) -> ValidationResult:
        """Validate every dirty page and globals document together."""
        errors = self.validator.validate_many(self.dirty_items(), self.schema_for)
        return ValidationResult.from_errors(errors)

    # -- publish --------------------------------------------------------

    async def publish(self) -> PublishResult:
        """Overwrite main with the draft branch's files.

        Refused as a whole when any dirty item fails validation. Outstanding
        drafts are committed to the draft branch first.
        """
        validation = self.validate_all_drafts()
        if not validation.is_valid:
            logger.info("Publish blocked by validation", extra={"error_count": len(validation.error_list)})
            return PublishResult(status=PublishStatus.blocked, errors=validation.error_list)

        for raw_key in self.drafts.list_dirty():
            result = await self.save(ItemKey.parse(raw_key))
            if result.status == SaveStatus.invalid:
                return PublishResult(status=PublishStatus.blocked, errors=result.errors)

        if not await self.remote.branch_exists(self.draft_branch):
            return PublishResult(status=PublishStatus.nothing_to_publish)

        main = await self.remote.get_main_branch()
        comparison = await self.remote.compare_branches(main, self.draft_branch)
        changed = [f for f in comparison.files if f.status in _PUBLISHABLE]
        skipped = [f.filename for f in comparison.files if f.status == FileStatus.removed]
        if skipped:
            logger.info("Draft removals are not published", extra={"paths": skipped})
        if not changed:
            return PublishResult(status=PublishStatus.nothing_to_publish)

        published: list[str] = []
        head_sha: str | None = None
        try:
            for change in changed:
                async with self._path_locks[change.filename]:
                    content = await self.remote.get_file_content(change.filename, self.draft_branch)
                    if content is None:
                        continue
                    head_sha = await self.remote.commit_file(
                        change.filename,
                        content,
                        f"Publish {change.filename} from {self.draft_branch}",
                        main,
                    )
                published.append(change.filename)
        finally:
            if published:
                async with self._epoch_lock:
                    self.cache.invalidate_all()

        try:
            await self.remote.delete_branch(self.draft_branch)
        except NotFoundError:
            pass

        logger.info(
            "Published draft branch",
            extra={"branch": self.draft_branch, "paths": published, "sha": head_sha},
        )
        await self.check_and_refresh_freshness()
        return PublishResult(status=PublishStatus.published, published_paths=published, head_sha=head_sha)

    # -- changes & history ----------------------------------------------

    async def get_changes(self, key: ItemKey) -> DocumentChanges:
        """Field-level differences between main and the draft branch for one document."""
        path = self.paths.path_for(key)
        result = DocumentChanges(item_key=str(key), path=path)
        if not await self.remote.branch_exists(self.draft_branch):
            return result

        main = await self.remote.get_main_branch()
        comparison = await self.remote.compare_branches(main, self.draft_branch)
        file_change = comparison.file(path)
        if file_change is None:
            return result

        main_raw = await self.remote.get_file_content(path, main)
        draft_raw = await self.remote.get_file_content(path, self.draft_branch)
        main_doc = self._decode(path, main_raw) if main_raw is not None else None
        draft_doc = self._decode(path, draft_raw) if draft_raw is not None else None

        added, removed, field_changes = diff_items(
            ContentItem.from_document(key, main_doc),
            ContentItem.from_document(key, draft_doc),
        )
        return result.model_copy(
            update={
                "file_status": file_change.status,
                "main": main_doc,
                "draft": draft_doc,
                "added_components": added,
                "removed_components": removed,
                "field_changes": field_changes,
            }
        )

    async def get_history(
        self,
        key: ItemKey | None = None,
        *,
        page: int = 1,
        per_page: int = 20,
    ) -> list[CommitRecord]:
        """Commits on the draft branch (main when there is none), newest first."""
        branch = self.draft_branch
        if not await self.remote.branch_exists(branch):
            branch = await self.remote.get_main_branch()
        path = self.paths.path_for(key) if key is not None else None
        return await self.remote.get_commits(branch, page=page, per_page=per_page, path=path)


__all__ = ["SyncCoordinator", "PAGES_LIST_KEY", "serialize_document"]
