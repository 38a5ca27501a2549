from __future__ import annotations

import logging
from typing import Any

from .cache import CacheLayer
from .config import StoreBackend, SyncSettings
from .coordinator import SyncCoordinator
from .drafts import DraftOverlayStore
from .errors import AuthError, ConflictError, NetworkError, NotFoundError
from .github_store import GitHubContentStore, RemoteContentStore
from .kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from .models.commit import CommitRecord
from .models.content import ContentItem, ContentKind, ItemKey
from .models.results import DocumentChanges, PageInfo, PublishResult, SaveResult, SaveStatus
from .models.validation import ValidationResult
from .paths import ContentPaths
from .retry import RetryConfig
from .schema_registry import SchemaRegistry
from .validation import ValidationEngine

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Sync failed. Your changes are safe locally; try saving again."


class ContentService:
    """Entry points for the editing UI.

    Reads show pending local edits over the published content. Saves buffer
    the edit in the draft overlay first, so a failed sync never loses it.
    """

    def __init__(self, coordinator: SyncCoordinator) -> None:
        self.coordinator = coordinator
        self.drafts = coordinator.drafts
        self.paths = coordinator.paths

    def page_key(self, page_id: str) -> ItemKey:
        return self.paths.page_key(page_id)

    # -- reads ----------------------------------------------------------

    async def load_page(self, page_id: str) -> ContentItem:
        return await self._load(self.page_key(page_id))

    async def load_globals(self) -> ContentItem:
        return await self._load(ItemKey.globals())

    async def _load(self, key: ItemKey) -> ContentItem:
        change = self.drafts.get(key)
        if change is not None:
            return ContentItem.from_document(key, change.pending_data)
        return await self.coordinator.fetch_item(key)

    def is_dirty(self, key: ItemKey) -> bool:
        change = self.drafts.get(key)
        return change is not None and change.dirty

    async def list_pages(self) -> list[PageInfo]:
        return await self.coordinator.list_pages()

    # -- writes ---------------------------------------------------------

    async def save_page(self, page_id: str, data: dict[str, Any]) -> SaveResult:
        return await self._save(self.page_key(page_id), data)

    async def save_globals(self, data: dict[str, Any]) -> SaveResult:
        return await self._save(ItemKey.globals(), data)

    async def _save(self, key: ItemKey, data: dict[str, Any]) -> SaveResult:
        # Normalize through the model so only well-formed documents are buffered
        document = ContentItem.from_document(key, data).to_document()
        base_data = None
        if self.drafts.get(key) is None:
            base_data = self.coordinator.cache.get(str(key))
        self.drafts.put(key, document, base_data=base_data)
        return await self.commit(key)

    async def commit(self, key: ItemKey) -> SaveResult:
        """Push the buffered draft for ``key``; remote failures become a FAILED result."""
        try:
            return await self.coordinator.save(key)
        except (NetworkError, AuthError, NotFoundError, ConflictError) as exc:
            logger.warning(
                "Save failed; draft kept locally",
                extra={"item_key": str(key), "error_type": type(exc).__name__, "error": str(exc)},
            )
            return SaveResult(status=SaveStatus.failed, item_key=str(key), message=SAVE_FAILED_MESSAGE)

    def discard(self, kind: ContentKind, item_id: str) -> bool:
        key = ItemKey.globals() if kind == ContentKind.globals else self.page_key(item_id)
        return self.drafts.discard(key)

    def list_dirty(self) -> list[str]:
        return self.drafts.list_dirty()

    def validation_summary(self) -> ValidationResult:
        return self.coordinator.validate_all_drafts()

    async def publish(self) -> PublishResult:
        return await self.coordinator.publish()

    # -- repository views -----------------------------------------------

    async def get_changes(self, page_id: str) -> DocumentChanges:
        return await self.coordinator.get_changes(self.page_key(page_id))

    async def get_history(self, page_id: str | None = None, *, page: int = 1, per_page: int = 20) -> list[CommitRecord]:
        key = self.page_key(page_id) if page_id else None
        return await self.coordinator.get_history(key, page=page, per_page=per_page)

    async def get_latest_sha(self) -> str:
        return await self.coordinator.latest_remote_sha()

    async def check_freshness(self) -> str | None:
        return await self.coordinator.check_and_refresh_freshness()

    async def aclose(self) -> None:
        close = getattr(self.coordinator.remote, "aclose", None)
        if close is not None:
            await close()


def build_store(settings: SyncSettings) -> KeyValueStore:
    """Pick the persistent substrate for cache and drafts."""
    if settings.store == StoreBackend.file:
        return JsonFileKeyValueStore(settings.store_path)
    if settings.store == StoreBackend.firestore:
        from .firestore_kv_store import FirestoreKeyValueStore

        return FirestoreKeyValueStore(project_id=settings.project_id)
    return InMemoryKeyValueStore()


def build_service(
    settings: SyncSettings,
    *,
    remote: RemoteContentStore | None = None,
    store: KeyValueStore | None = None,
    schemas: SchemaRegistry | None = None,
) -> ContentService:
    """Wire a ContentService from settings; any collaborator can be supplied directly."""
    if remote is None:
        remote = GitHubContentStore(
            owner=settings.github_owner,
            repo=settings.github_repo,
            token=settings.github_token,
            project_id=settings.project_id,
            timeout=settings.http_timeout,
            retry=RetryConfig(max_retries=settings.max_retries),
        )
    if store is None:
        store = build_store(settings)
    if schemas is None:
        schemas = SchemaRegistry.from_file(settings.schema_path) if settings.schema_path else SchemaRegistry()

    coordinator = SyncCoordinator(
        remote=remote,
        cache=CacheLayer(store),
        drafts=DraftOverlayStore(store),
        validator=ValidationEngine(default_locale=settings.default_locale),
        schema_for=schemas,
        paths=ContentPaths(settings.content_root),
        draft_branch=settings.draft_branch,
    )
    logger.info(
        "Content service ready",
        extra={
            "repository": f"{settings.github_owner}/{settings.github_repo}",
            "store": settings.store.value if settings.store else None,
            "draft_branch": settings.draft_branch,
            "schemas": len(schemas.names()),
        },
    )
    return ContentService(coordinator)


__all__ = ["ContentService", "SAVE_FAILED_MESSAGE", "build_service", "build_store"]
