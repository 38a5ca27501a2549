from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import CacheCorruptionError
from .kv_store import KeyValueStore, delete_namespace
from .models.cache import CacheEntry

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "cache"
META_NAMESPACE = "cache_meta"
EPOCH_KEY = "epoch"


class CacheLayer:
    """Persisted document cache stamped with a single epoch sha.

    An entry is served only while its ``origin_sha`` equals the current epoch.
    Changing the epoch is a single write; leftover entries from the old epoch
    are unreadable from that moment and are then deleted in bounded batches.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = threading.RLock()

    @property
    def epoch(self) -> str | None:
        record = self._store.get(META_NAMESPACE, EPOCH_KEY)
        if record is None:
            return None
        sha = record.get("sha")
        if not isinstance(sha, str) or not sha:
            self._report_corruption(CacheCorruptionError(EPOCH_KEY, "epoch record has no sha"))
            return None
        return sha

    def is_valid(self, sha: str | None) -> bool:
        epoch = self.epoch
        return epoch is not None and epoch == sha

    def get(self, key: str) -> Any | None:
        """Cached value for ``key``, or None on a miss, a stale entry or a corrupt record."""
        with self._lock:
            record = self._store.get(CACHE_NAMESPACE, key)
            if record is None:
                return None
            try:
                entry = CacheEntry.model_validate(record)
            except PydanticValidationError as exc:
                self._report_corruption(CacheCorruptionError(key, str(exc.errors()[:1])))
                self._store.delete(CACHE_NAMESPACE, key)
                return None
            if not self.is_valid(entry.origin_sha):
                self._store.delete(CACHE_NAMESPACE, key)
                return None
            return entry.value

    def set(self, key: str, value: Any, sha: str) -> bool:
        """Store ``value`` under ``key`` if ``sha`` is the current epoch.

        Returns False (and stores nothing) when the epoch has moved on since
        the value was fetched.
        """
        with self._lock:
            if not self.is_valid(sha):
                logger.debug(
                    "Discarding cache fill from a stale epoch",
                    extra={"key": key, "sha": sha, "epoch": self.epoch},
                )
                return False
            entry = CacheEntry(key=key, value=value, origin_sha=sha)
            self._store.set(CACHE_NAMESPACE, key, entry.model_dump(mode="json"))
            return True

    def invalidate_all(self, new_epoch: str | None = None) -> int:
        """Move to ``new_epoch``, then drop every entry.

        ``None`` leaves the cache without an epoch, so nothing is valid until
        the next freshness check adopts one. The epoch write comes first: from
        then on ``get`` rejects every old entry, whatever the deletes below
        have reached. Returns the number of entries removed.
        """
        with self._lock:
            if new_epoch is None:
                self._store.delete(META_NAMESPACE, EPOCH_KEY)
            else:
                self._store.set(
                    META_NAMESPACE,
                    EPOCH_KEY,
                    {"sha": new_epoch, "updated_at": datetime.now(timezone.utc).isoformat()},
                )

            removed = delete_namespace(self._store, CACHE_NAMESPACE)

        logger.info(
            "Invalidated cache",
            extra={"entries": removed, "epoch": new_epoch},
        )
        return removed

    def adopt_epoch(self, sha: str) -> bool:
        """Switch to ``sha`` if it differs from the current epoch. Returns True on a switch."""
        with self._lock:
            if self.epoch == sha:
                return False
            self.invalidate_all(sha)
            return True

    def keys(self) -> list[str]:
        return self._store.keys(CACHE_NAMESPACE)

    def _report_corruption(self, error: CacheCorruptionError) -> None:
        logger.warning("Dropping corrupt cache record", extra={"key": error.key, "reason": error.reason})


__all__ = ["CacheLayer", "CACHE_NAMESPACE", "META_NAMESPACE", "EPOCH_KEY"]
