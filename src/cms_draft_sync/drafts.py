from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .kv_store import KeyValueStore, delete_namespace
from .models.content import ContentItem, InternalLink, ItemKey, Scalar, TranslationMap
from .models.draft import DraftChange

logger = logging.getLogger(__name__)

DRAFT_NAMESPACE = "drafts"


def _key(item_key: ItemKey | str) -> str:
    return str(item_key)


class DraftOverlayStore:
    """Durable record of uncommitted edits, one DraftChange per document.

    Entries live until a commit succeeds (``clear``) or the editor throws the
    edit away (``discard``). The cache is never touched from here.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.RLock()

    def put(
        self,
        item_key: ItemKey | str,
        data: dict[str, Any],
        *,
        base_data: dict[str, Any] | None = None,
    ) -> DraftChange:
        """Record ``data`` as the pending document. The first put fixes ``base_data``."""
        key = _key(item_key)
        with self._lock:
            existing = self.get(key)
            change = DraftChange(
                item_key=key,
                base_data=existing.base_data if existing else base_data,
                pending_data=data,
                dirty=True,
            )
            self._store.set(DRAFT_NAMESPACE, key, change.model_dump(mode="json"))
        logger.debug("Stored draft", extra={"item_key": key})
        return change

    def get(self, item_key: ItemKey | str) -> DraftChange | None:
        key = _key(item_key)
        record = self._store.get(DRAFT_NAMESPACE, key)
        if record is None:
            return None
        try:
            return DraftChange.model_validate(record)
        except PydanticValidationError:
            logger.warning("Dropping unreadable draft record", extra={"item_key": key})
            self._store.delete(DRAFT_NAMESPACE, key)
            return None

    def list_dirty(self) -> list[str]:
        dirty: list[str] = []
        for key in self._store.keys(DRAFT_NAMESPACE):
            change = self.get(key)
            if change is not None and change.dirty:
                dirty.append(key)
        return dirty

    def has_any(self) -> bool:
        return bool(self.list_dirty())

    def discard(self, item_key: ItemKey | str) -> bool:
        """Throw away local edits for one document. Returns False if there were none."""
        key = _key(item_key)
        with self._lock:
            if self._store.get(DRAFT_NAMESPACE, key) is None:
                return False
            self._store.delete(DRAFT_NAMESPACE, key)
        logger.info("Discarded draft", extra={"item_key": key})
        return True

    def clear(self, item_key: ItemKey | str, *, committed: DraftChange | None = None) -> bool:
        """Remove a draft after its commit succeeded.

        With ``committed``, the draft is only removed if it is still the
        version that was committed; a newer put made meanwhile is kept.
        """
        key = _key(item_key)
        with self._lock:
            if committed is not None:
                current = self.get(key)
                if current is not None and current.updated_at != committed.updated_at:
                    logger.info("Keeping draft edited during commit", extra={"item_key": key})
                    return False
            self._store.delete(DRAFT_NAMESPACE, key)
        logger.debug("Cleared committed draft", extra={"item_key": key})
        return True

    def clear_all(self) -> None:
        with self._lock:
            delete_namespace(self._store, DRAFT_NAMESPACE)

    def update_field(
        self,
        item_key: ItemKey | str,
        component_id: str,
        field_name: str,
        value: Any,
        locale: str | None = None,
    ) -> bool:
        """Overwrite a single field of a pending draft.

        With ``locale`` the value goes into that locale of a translation map;
        any other field has its whole value replaced.
        Returns False when there is no draft or no such component.
        """
        key = ItemKey.parse(item_key) if isinstance(item_key, str) else item_key
        with self._lock:
            change = self.get(key)
            if change is None:
                return False
            item = ContentItem.from_document(key, change.pending_data)
            component = item.component(component_id)
            if component is None:
                return False

            current = component.data.get(field_name)
            field_type = current.field_type if current is not None else "unknown"
            if locale and isinstance(current, TranslationMap):
                component.data[field_name] = TranslationMap(
                    field_type=field_type, values={**current.values, locale: value}
                )
            elif isinstance(current, InternalLink) and isinstance(value, str):
                component.data[field_name] = InternalLink(field_type=field_type, path=value)
            elif isinstance(current, Scalar):
                component.data[field_name] = Scalar(
                    field_type=field_type, value=value, translatable=current.translatable
                )
            else:
                component.data[field_name] = Scalar(field_type=field_type, value=value)

            self.put(key, item.to_document())
        return True


__all__ = ["DraftOverlayStore", "DRAFT_NAMESPACE"]
