"""
In-memory document store.

Keeps documents in dictionaries and models the store's visibility window:
writes land immediately but only become visible to ``documents()`` and
``count()`` after ``refresh()``. ``get()`` is a realtime read by id.
Documents are identified by kind and id, so documents of different kinds may
share an id. Useful for local runs and tests without an Elasticsearch cluster.
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from anomaly_results.exceptions import StoreError
from anomaly_results.logging import get_logger
from anomaly_results.store.base import (
    BulkItem,
    BulkItemResult,
    BulkResponse,
    DocumentFilter,
    DocumentStore,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = get_logger(__name__)

# Returns a rejection reason for an item, or None to accept it
Rejector = Callable[[str, BulkItem], str | None]


@dataclass
class StoredDocument:
    """A document as held by the in-memory store."""

    kind: str
    doc_id: str
    body: dict[str, Any]
    parent: str | None = None
    version: int = 1


@dataclass
class _Collection:
    latest: dict[tuple[str, str], StoredDocument] = field(default_factory=dict)
    visible: dict[tuple[str, str], StoredDocument] = field(default_factory=dict)


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe dictionary-backed document store.

    Args:
        rejector: Optional callable used to simulate per-item rejections in
            batched writes. It receives the collection and the item and
            returns a failure reason, or None to accept the item.
    """

    def __init__(self, rejector: Rejector | None = None) -> None:
        self._rejector = rejector
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.Lock()

        logger.debug("memory_document_store_initialized")

    def _collection(self, name: str) -> _Collection:
        if name not in self._collections:
            self._collections[name] = _Collection()
        return self._collections[name]

    def _write(
        self,
        collection: str,
        kind: str,
        doc_id: str | None,
        body: dict[str, Any],
        parent: str | None = None,
    ) -> str:
        target = self._collection(collection)
        assigned = doc_id if doc_id is not None else uuid.uuid4().hex
        existing = target.latest.get((kind, assigned))
        target.latest[(kind, assigned)] = StoredDocument(
            kind=kind,
            doc_id=assigned,
            body=dict(body),
            parent=parent,
            version=existing.version + 1 if existing else 1,
        )
        return assigned

    def upsert(
        self, collection: str, kind: str, doc_id: str | None, body: dict[str, Any]
    ) -> str:
        with self._lock:
            return self._write(collection, kind, doc_id, body)

    def bulk_upsert(self, collection: str, items: Sequence[BulkItem]) -> BulkResponse:
        start_time = time.time()
        results: list[BulkItemResult] = []

        with self._lock:
            for item in items:
                reason = self._rejector(collection, item) if self._rejector else None
                if reason is not None:
                    results.append(BulkItemResult(doc_id=item.doc_id, kind=item.kind, error=reason))
                    continue
                assigned = self._write(collection, item.kind, item.doc_id, item.body, item.parent)
                results.append(BulkItemResult(doc_id=assigned, kind=item.kind))

        return BulkResponse(items=results, took_ms=(time.time() - start_time) * 1000)

    def refresh(self, collection: str) -> None:
        with self._lock:
            target = self._collection(collection)
            target.visible = dict(target.latest)

    def bulk_delete_by_filter(self, collection: str, doc_filter: DocumentFilter) -> int:
        with self._lock:
            target = self._collection(collection)
            doomed = [
                key for key, doc in target.latest.items() if doc_filter.matches(doc.body)
            ]
            for key in doomed:
                del target.latest[key]
        return len(doomed)

    def bulk_raw(self, payload: bytes) -> BulkResponse:
        """
        Apply an NDJSON bulk payload.

        Supports ``index``/``create`` actions followed by a source line, and
        ``delete`` actions without one.
        """
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreError.bulk_failed("_bulk", 0, "payload is not valid UTF-8", cause=e) from e
        lines = [line for line in text.splitlines() if line.strip()]
        results: list[BulkItemResult] = []

        with self._lock:
            position = 0
            while position < len(lines):
                try:
                    action = json.loads(lines[position])
                    op_type, meta = next(iter(action.items()))
                except (ValueError, StopIteration, AttributeError) as e:
                    raise StoreError.bulk_failed(
                        "_bulk", len(lines), f"malformed action at line {position + 1}", cause=e
                    ) from e

                index = meta.get("_index") if isinstance(meta, dict) else None
                if not index:
                    raise StoreError.bulk_failed(
                        "_bulk", len(lines), f"missing _index at line {position + 1}"
                    )
                kind = meta.get("_type") or "doc"
                position += 1

                if op_type == "delete":
                    removed = self._collection(index).latest.pop((kind, meta.get("_id")), None)
                    results.append(
                        BulkItemResult(
                            doc_id=meta.get("_id"),
                            kind=kind,
                            error=None if removed else "not_found",
                        )
                    )
                    continue

                if op_type not in ("index", "create") or position >= len(lines):
                    raise StoreError.bulk_failed(
                        "_bulk", len(lines), f"unsupported action {op_type!r} at line {position}"
                    )
                try:
                    body = json.loads(lines[position])
                except ValueError as e:
                    raise StoreError.bulk_failed(
                        "_bulk", len(lines), f"malformed source at line {position + 1}", cause=e
                    ) from e
                if not isinstance(body, dict):
                    raise StoreError.bulk_failed(
                        "_bulk", len(lines), f"source at line {position + 1} is not an object"
                    )
                position += 1
                kind = body.get("result_type", kind)

                assigned = self._write(index, kind, meta.get("_id"), body)
                results.append(BulkItemResult(doc_id=assigned, kind=kind))

        return BulkResponse(items=results)

    # Read helpers

    def get(self, collection: str, kind: str, doc_id: str) -> StoredDocument | None:
        """Realtime read of one document by kind and id, regardless of refresh."""
        with self._lock:
            return self._collection(collection).latest.get((kind, doc_id))

    def documents(self, collection: str, kind: str | None = None) -> list[StoredDocument]:
        """Documents visible as of the last refresh, optionally restricted to one kind."""
        with self._lock:
            visible = list(self._collection(collection).visible.values())
        if kind is None:
            return visible
        return [doc for doc in visible if doc.kind == kind]

    def count(self, collection: str, kind: str | None = None) -> int:
        """Number of visible documents."""
        return len(self.documents(collection, kind))

    def collections(self) -> list[str]:
        with self._lock:
            return sorted(self._collections)
