from __future__ import annotations

import logging
from typing import Iterable, Mapping

from google.cloud import firestore

from .kv_store import MAX_BATCH_WRITES, Record, RecordRef

logger = logging.getLogger(__name__)


class FirestoreKeyValueStore:
    """Firestore-backed record store for production use.

    Each namespace maps to a collection ``{prefix}_{namespace}``; keys are
    document ids.
    """

    def __init__(self, project_id: str | None = None, *, collection_prefix: str = "cms") -> None:
        self._db = firestore.Client(project=project_id)
        self._prefix = collection_prefix

    def _collection(self, namespace: str):
        return self._db.collection(f"{self._prefix}_{namespace}")

    def get(self, namespace: str, key: str) -> Record | None:
        doc = self._collection(namespace).document(key).get()
        if not doc.exists:
            return None
        return doc.to_dict()

    def set(self, namespace: str, key: str, value: Record) -> None:
        self._collection(namespace).document(key).set(value)

    def delete(self, namespace: str, key: str) -> None:
        self._collection(namespace).document(key).delete()

    def keys(self, namespace: str) -> list[str]:
        return [doc.id for doc in self._collection(namespace).list_documents()]

    def write_batch(
        self,
        *,
        sets: Mapping[RecordRef, Record] | None = None,
        deletes: Iterable[RecordRef] = (),
    ) -> None:
        """Apply deletes then sets in one batched commit."""
        deletes = list(deletes)
        sets = dict(sets or {})
        total = len(deletes) + len(sets)
        if total == 0:
            return
        if total > MAX_BATCH_WRITES:
            raise ValueError(f"Batch of {total} writes exceeds Firestore limit of {MAX_BATCH_WRITES}")

        batch = self._db.batch()
        for namespace, key in deletes:
            batch.delete(self._collection(namespace).document(key))
        for (namespace, key), value in sets.items():
            batch.set(self._collection(namespace).document(key), value)
        batch.commit()

        logger.debug(
            "Committed Firestore batch",
            extra={"deletes": len(deletes), "sets": len(sets)},
        )


__all__ = ["FirestoreKeyValueStore", "MAX_BATCH_WRITES"]
