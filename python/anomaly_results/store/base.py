"""
Document store abstraction.

The persister only needs a narrow slice of a document store: single upsert,
batched upsert with per-item outcomes, a blocking refresh, delete by filter
and a raw pre-formatted bulk submission. Adapters raise StoreError when a
call fails as a whole; per-item rejections inside a batch are reported in
the BulkResponse instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass
class BulkItem:
    """One document inside a batched write."""

    kind: str
    doc_id: str | None
    body: dict[str, Any]
    parent: str | None = None


@dataclass
class BulkItemResult:
    """Outcome of one item in a batched write."""

    doc_id: str | None
    kind: str = ""
    error: str | None = None

    @property
    def failed(self) -> bool:
        """Whether the store rejected this item."""
        return self.error is not None


@dataclass
class BulkResponse:
    """Per-item outcomes of a batched write, in submission order."""

    items: list[BulkItemResult] = field(default_factory=list)
    took_ms: float = 0.0

    @property
    def has_failures(self) -> bool:
        """Whether any item was rejected."""
        return any(item.failed for item in self.items)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if item.failed)

    def build_failure_message(self) -> str:
        """Aggregate every item failure into one message."""
        lines = [
            f"[{position}]: index [{item.kind}], id [{item.doc_id}], message [{item.error}]"
            for position, item in enumerate(self.items)
            if item.failed
        ]
        if not lines:
            return ""
        return "failure in bulk execution:\n" + "\n".join(lines)


@dataclass(frozen=True)
class DocumentFilter:
    """Equality filter on a single document field."""

    field: str
    value: Any

    def matches(self, body: dict[str, Any]) -> bool:
        return body.get(self.field) == self.value


class DocumentStore(ABC):
    """Abstract document store used by the results persister."""

    @abstractmethod
    def upsert(
        self, collection: str, kind: str, doc_id: str | None, body: dict[str, Any]
    ) -> str:
        """
        Write one document, replacing any document of the same kind and id.

        Args:
            collection: Target collection (one per job).
            kind: Document kind label.
            doc_id: Document id, or None to let the store assign one.
            body: Document body.

        Returns:
            The id the document was written under.
        """
        pass

    @abstractmethod
    def bulk_upsert(self, collection: str, items: Sequence[BulkItem]) -> BulkResponse:
        """
        Write several documents in one round trip.

        Rejected items are reported in the response; they do not abort the
        rest of the batch.
        """
        pass

    @abstractmethod
    def refresh(self, collection: str) -> None:
        """Block until prior writes to the collection are visible to reads."""
        pass

    @abstractmethod
    def bulk_delete_by_filter(self, collection: str, doc_filter: DocumentFilter) -> int:
        """
        Delete every document matching the filter.

        Returns:
            Number of documents deleted.
        """
        pass

    @abstractmethod
    def bulk_raw(self, payload: bytes) -> BulkResponse:
        """Submit a pre-formatted newline-delimited bulk payload unvalidated."""
        pass

    def close(self) -> None:
        """Release client resources."""
        return None
