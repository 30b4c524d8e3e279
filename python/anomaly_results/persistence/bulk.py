"""
Batch writer for sibling documents.

Collects the documents of one kind that belong together (all records of a
bucket, all its influencers, ...) and submits them in a single bulk call.
Nothing is raised: a serialization failure drops that one document, a store
rejection of some items is logged once as an aggregated message, and a
failed call is logged and reported on the result.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from anomaly_results.exceptions import SerializationError, StoreError
from anomaly_results.logging import get_logger
from anomaly_results.store.base import BulkItem

if TYPE_CHECKING:
    from anomaly_results.persistence.identity import DocumentKind
    from anomaly_results.store.base import DocumentStore

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """
    Result of one batch submission.

    Attributes:
        kind: Document kind of the batch.
        submitted: Number of documents sent to the store.
        failed: Number of documents the store did not accept.
        assigned: (object, document id) pairs for every accepted document.
        failure_message: Aggregated per-item failure message, if any.
        error: Whole-call failure, if the bulk call itself failed.
        serialization_errors: Documents dropped before submission.
    """

    kind: str
    submitted: int = 0
    failed: int = 0
    assigned: list[tuple[Any, str]] = field(default_factory=list)
    failure_message: str = ""
    error: str | None = None
    serialization_errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.submitted - self.failed

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or bool(self.serialization_errors)

    @property
    def call_failed(self) -> bool:
        """Whether the bulk call failed as a whole."""
        return self.error is not None


class BatchWriter:
    """
    Accumulates documents of one kind and writes them in one bulk call.

    Usage:
        writer = BatchWriter(store, index, DocumentKind.RECORD)
        for record in records:
            writer.add(None, lambda r=record: serializer.serialize("record", r),
                       parent=bucket.id, ref=record)
        result = writer.execute()
    """

    def __init__(self, store: DocumentStore, index: str, kind: DocumentKind) -> None:
        self._store = store
        self._index = index
        self._kind = kind
        self._items: list[BulkItem] = []
        self._refs: list[Any] = []
        self._serialization_errors: list[str] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(
        self,
        doc_id: str | None,
        render: Callable[[], dict[str, Any]],
        parent: str | None = None,
        ref: Any = None,
    ) -> bool:
        """
        Queue one document.

        Args:
            doc_id: Document id, or None to let the store assign one.
            render: Produces the document body.
            parent: Id of the owning document, if any.
            ref: Object the document was made from, handed back with its id.

        Returns:
            False if the document could not be serialized and was dropped.
        """
        try:
            body = render()
        except SerializationError as e:
            logger.error(
                "batch_document_serialization_failed",
                kind=self._kind.value,
                index=self._index,
                doc_id=doc_id,
                error=e.to_dict(),
            )
            self._serialization_errors.append(str(e))
            return False

        logger.debug(
            "bulk_action_index",
            kind=self._kind.value,
            index=self._index,
            doc_id=doc_id if doc_id is not None else "auto-generated",
            parent=parent,
        )
        self._items.append(BulkItem(kind=self._kind.value, doc_id=doc_id, body=body, parent=parent))
        self._refs.append(ref)
        return True

    def execute(self) -> BatchResult:
        """Submit the queued documents. An empty batch makes no store call."""
        result = BatchResult(
            kind=self._kind.value,
            serialization_errors=list(self._serialization_errors),
        )
        if not self._items:
            return result

        result.submitted = len(self._items)
        logger.debug(
            "bulk_request",
            kind=self._kind.value,
            index=self._index,
            actions=result.submitted,
        )

        try:
            response = self._store.bulk_upsert(self._index, self._items)
        except StoreError as e:
            logger.error(
                "bulk_request_failed",
                kind=self._kind.value,
                index=self._index,
                actions=result.submitted,
                error=e.to_dict(),
            )
            result.failed = result.submitted
            result.error = str(e)
            return result

        for ref, item in zip(self._refs, response.items):
            if not item.failed and item.doc_id is not None:
                result.assigned.append((ref, item.doc_id))
        result.failed = response.failed_count

        if response.has_failures:
            result.failure_message = response.build_failure_message()
            logger.error(
                "bulk_index_has_errors",
                kind=self._kind.value,
                index=self._index,
                failed=result.failed,
                submitted=result.submitted,
                failure_message=result.failure_message,
            )

        return result
