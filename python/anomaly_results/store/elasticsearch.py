"""
Elasticsearch-backed document store.

Maps the persister's store operations onto the elasticsearch-py 8 client:
- upsert -> index API (id optional, Elasticsearch assigns one when absent)
- bulk_upsert -> bulk API, reading per-item outcomes in submission order
- refresh -> indices refresh API
- bulk_delete_by_filter -> delete-by-query with a term query
- bulk_raw -> bulk API with a pre-formatted NDJSON body

Indices hold a single mapping type, so the document kind is stored in a
``result_type`` field and prefixed to the Elasticsearch ``_id``: a partition
summary and its bucket share an id without overwriting each other. Ids the
caller leaves open are generated here so they can be prefixed too. A child document's
parent id is used as its routing key and kept in a ``parent_id`` field so the
child lands on the parent's shard.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from elasticsearch import ApiError, Elasticsearch, TransportError

from anomaly_results.config import StoreConfig, get_config
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

RESULT_TYPE_FIELD = "result_type"
PARENT_ID_FIELD = "parent_id"


def _es_id(kind: str, doc_id: str) -> str:
    return f"{kind}_{doc_id}"


def _with_kind(kind: str, body: dict[str, Any], parent: str | None = None) -> dict[str, Any]:
    document = dict(body)
    document[RESULT_TYPE_FIELD] = kind
    if parent is not None:
        document[PARENT_ID_FIELD] = parent
    return document


def _item_results(response: Any) -> BulkResponse:
    """Convert a bulk API response into per-item outcomes."""
    results: list[BulkItemResult] = []
    for entry in response.get("items", []):
        _op_type, outcome = next(iter(entry.items()))
        error = outcome.get("error")
        if isinstance(error, dict):
            error = f"{error.get('type')}: {error.get('reason')}"
        results.append(
            BulkItemResult(
                doc_id=outcome.get("_id"),
                kind=outcome.get("_index", ""),
                error=error,
            )
        )
    return BulkResponse(items=results, took_ms=float(response.get("took", 0)))


class ElasticsearchDocumentStore(DocumentStore):
    """Document store backed by an Elasticsearch cluster."""

    def __init__(self, client: Elasticsearch, hosts: list[str] | None = None) -> None:
        """
        Initialize the store.

        Args:
            client: Configured Elasticsearch client.
            hosts: Hosts the client points at, for error context only.
        """
        self._client = client
        self._hosts = hosts or []

        logger.info("elasticsearch_document_store_initialized", hosts=self._hosts)

    @classmethod
    def from_config(cls, config: StoreConfig | None = None) -> ElasticsearchDocumentStore:
        """
        Create a store from configuration.

        Args:
            config: Store configuration. Uses global config if None.
        """
        if config is None:
            config = get_config().store

        kwargs: dict[str, Any] = {
            "request_timeout": config.request_timeout,
            "verify_certs": config.verify_certs,
        }
        if config.ca_certs:
            kwargs["ca_certs"] = config.ca_certs
        if config.api_key:
            kwargs["api_key"] = config.api_key
        elif config.username:
            kwargs["basic_auth"] = (config.username, config.password or "")

        try:
            client = Elasticsearch(hosts=config.hosts, **kwargs)
        except (ValueError, TransportError) as e:
            raise StoreError.connection_failed(config.hosts, str(e)) from e

        return cls(client=client, hosts=config.hosts)

    def upsert(
        self, collection: str, kind: str, doc_id: str | None, body: dict[str, Any]
    ) -> str:
        assigned = doc_id if doc_id is not None else uuid.uuid4().hex
        try:
            self._client.index(
                index=collection, id=_es_id(kind, assigned), document=_with_kind(kind, body)
            )
        except (ApiError, TransportError) as e:
            raise StoreError.write_failed(collection, kind, str(e), cause=e) from e
        return assigned

    def bulk_upsert(self, collection: str, items: Sequence[BulkItem]) -> BulkResponse:
        operations: list[dict[str, Any]] = []
        assigned: list[str] = []
        for item in items:
            doc_id = item.doc_id if item.doc_id is not None else uuid.uuid4().hex
            assigned.append(doc_id)
            action: dict[str, Any] = {"_index": collection, "_id": _es_id(item.kind, doc_id)}
            if item.parent is not None:
                action["routing"] = item.parent
            operations.append({"index": action})
            operations.append(_with_kind(item.kind, item.body, item.parent))

        try:
            response = self._client.bulk(operations=operations)
        except (ApiError, TransportError) as e:
            raise StoreError.bulk_failed(collection, len(items), str(e), cause=e) from e

        result = _item_results(response)
        # Report kinds and caller-facing ids rather than index names and prefixed ids
        for item, doc_id, outcome in zip(items, assigned, result.items):
            outcome.kind = item.kind
            outcome.doc_id = doc_id
        return result

    def refresh(self, collection: str) -> None:
        try:
            self._client.indices.refresh(index=collection)
        except (ApiError, TransportError) as e:
            raise StoreError.refresh_failed(collection, str(e), cause=e) from e

    def bulk_delete_by_filter(self, collection: str, doc_filter: DocumentFilter) -> int:
        try:
            response = self._client.delete_by_query(
                index=collection,
                query={"term": {doc_filter.field: doc_filter.value}},
                conflicts="proceed",
            )
        except (ApiError, TransportError) as e:
            raise StoreError.delete_failed(collection, str(e), cause=e) from e
        return int(response.get("deleted", 0))

    def bulk_raw(self, payload: bytes) -> BulkResponse:
        try:
            response = self._client.bulk(operations=payload)
        except (ApiError, TransportError) as e:
            raise StoreError.bulk_failed("_bulk", 0, str(e), cause=e) from e
        return _item_results(response)

    def close(self) -> None:
        self._client.close()
