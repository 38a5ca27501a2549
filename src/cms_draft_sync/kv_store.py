from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

logger = logging.getLogger(__name__)

Record = dict[str, Any]
RecordRef = tuple[str, str]

# Largest write_batch every backend accepts (Firestore caps a batch at 500)
MAX_BATCH_WRITES = 500


class KeyValueStore(Protocol):
    """Namespaced record store; each write is all-or-nothing."""

    def get(self, namespace: str, key: str) -> Record | None:
        ...

    def set(self, namespace: str, key: str, value: Record) -> None:
        ...

    def delete(self, namespace: str, key: str) -> None:
        ...

    def keys(self, namespace: str) -> list[str]:
        ...

    def write_batch(
        self,
        *,
        sets: Mapping[RecordRef, Record] | None = None,
        deletes: Iterable[RecordRef] = (),
    ) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store for dev and tests."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Record]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> Record | None:
        with self._lock:
            value = self._data.get(namespace, {}).get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, namespace: str, key: str, value: Record) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    def delete(self, namespace: str, key: str) -> None:
        with self._lock:
            self._data.get(namespace, {}).pop(key, None)

    def keys(self, namespace: str) -> list[str]:
        with self._lock:
            return list(self._data.get(namespace, {}))

    def write_batch(
        self,
        *,
        sets: Mapping[RecordRef, Record] | None = None,
        deletes: Iterable[RecordRef] = (),
    ) -> None:
        staged = {(ns, key): copy.deepcopy(value) for (ns, key), value in (sets or {}).items()}
        with self._lock:
            for namespace, key in deletes:
                self._data.get(namespace, {}).pop(key, None)
            for (namespace, key), value in staged.items():
                self._data.setdefault(namespace, {})[key] = value


class JsonFileKeyValueStore:
    """Single JSON file on disk, rewritten atomically (temp file then rename)."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Record]] = self._load()

    def _load(self) -> dict[str, dict[str, Record]]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fp:
                data = json.load(fp)
        except json.JSONDecodeError:
            logger.warning(
                "Store file is not valid JSON; starting empty",
                extra={"path": str(self._path)},
            )
            return {}
        if not isinstance(data, dict):
            return {}
        return {ns: dict(records) for ns, records in data.items() if isinstance(records, dict)}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
        temp_path.write_text(json.dumps(self._data, indent=2, ensure_ascii=False, default=str) + "\n", encoding="utf-8")
        temp_path.replace(self._path)

    def get(self, namespace: str, key: str) -> Record | None:
        with self._lock:
            value = self._data.get(namespace, {}).get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, namespace: str, key: str, value: Record) -> None:
        self.write_batch(sets={(namespace, key): value})

    def delete(self, namespace: str, key: str) -> None:
        self.write_batch(deletes=[(namespace, key)])

    def keys(self, namespace: str) -> list[str]:
        with self._lock:
            return list(self._data.get(namespace, {}))

    def write_batch(
        self,
        *,
        sets: Mapping[RecordRef, Record] | None = None,
        deletes: Iterable[RecordRef] = (),
    ) -> None:
        # Records are round-tripped through JSON first so a bad value fails before anything changes
        staged = {ref: json.loads(json.dumps(value, default=str)) for ref, value in (sets or {}).items()}
        with self._lock:
            previous = copy.deepcopy(self._data)
            for namespace, key in deletes:
                self._data.get(namespace, {}).pop(key, None)
            for (namespace, key), value in staged.items():
                self._data.setdefault(namespace, {})[key] = value
            try:
                self._flush()
            except OSError:
                self._data = previous
                raise


def delete_namespace(store: KeyValueStore, namespace: str) -> int:
    """Delete every record in ``namespace`` in batches of at most MAX_BATCH_WRITES.

    Each batch is atomic; the namespace as a whole is not. Returns the count.
    """
    keys = store.keys(namespace)
    for start in range(0, len(keys), MAX_BATCH_WRITES):
        store.write_batch(deletes=[(namespace, key) for key in keys[start : start + MAX_BATCH_WRITES]])
    return len(keys)


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "Record",
    "RecordRef",
    "MAX_BATCH_WRITES",
    "delete_namespace",
]
