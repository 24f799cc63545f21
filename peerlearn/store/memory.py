"""In-memory document store used for tests and local development."""

from __future__ import annotations

import copy
from typing import Any

from peerlearn.errors import NOT_FOUND, StoreError
from peerlearn.store.base import COLLECTIONS, Batch, DocumentStore, Query, new_document_id


def _sort_key(value: Any) -> tuple[bool, Any]:
    return (value is not None, value)


class MemoryBatch(Batch):
    async def commit(self) -> None:
        store: MemoryDocumentStore = self._store  # type: ignore[assignment]
        for kind, collection, doc_id, _ in self._ops:
            store._check_collection(collection)
            if kind == "update" and doc_id not in store._data[collection]:
                staged = any(
                    k == "create" and c == collection and i == doc_id
                    for k, c, i, _ in self._ops
                )
                if not staged:
                    raise StoreError(NOT_FOUND, f"{collection}/{doc_id} does not exist")

        for kind, collection, doc_id, data in self._ops:
            resolved = store._resolve(data)
            if kind == "create":
                store._data[collection][doc_id] = copy.deepcopy(resolved)
            else:
                store._data[collection][doc_id].update(copy.deepcopy(resolved))
        self._ops.clear()


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store. Documents are deep-copied on the way in and out."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._data: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        self._check_collection(collection)
        doc_id = data.get("id") or new_document_id()
        body = {k: v for k, v in data.items() if k != "id"}
        self._data[collection][doc_id] = copy.deepcopy(self._resolve(body))
        await self._notify({collection})
        return doc_id

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._check_collection(collection)
        doc = self._data[collection].get(doc_id)
        if doc is None:
            return None
        return {"id": doc_id, **copy.deepcopy(doc)}

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self._check_collection(collection)
        doc = self._data[collection].get(doc_id)
        if doc is None:
            raise StoreError(NOT_FOUND, f"{collection}/{doc_id} does not exist")
        doc.update(copy.deepcopy(self._resolve(fields)))
        await self._notify({collection})

    async def query(self, query: Query) -> list[dict[str, Any]]:
        self._check_collection(query.collection)
        rows = [
            {"id": doc_id, **copy.deepcopy(doc)}
            for doc_id, doc in self._data[query.collection].items()
        ]
        rows = [r for r in rows if all(f.matches(r) for f in query.filters)]
        # Stable sorts applied from the least significant key up
        for field_name, direction in reversed(query.order_by):
            rows.sort(key=lambda r: _sort_key(r.get(field_name)), reverse=direction == "desc")
        if query.limit is not None:
            rows = rows[: query.limit]
        return rows

    def batch(self) -> MemoryBatch:
        return MemoryBatch(self)

    def count(self, collection: str) -> int:
        return len(self._data[collection])
