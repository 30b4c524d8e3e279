"""
Document store backends for persisted results.

The persister talks to a DocumentStore; two backends are provided:
- InMemoryDocumentStore: dictionaries with a refresh-based visibility model
- ElasticsearchDocumentStore: an Elasticsearch 8 cluster
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from anomaly_results.exceptions import ConfigurationError
from anomaly_results.store.base import (
    BulkItem,
    BulkItemResult,
    BulkResponse,
    DocumentFilter,
    DocumentStore,
)
from anomaly_results.store.memory import InMemoryDocumentStore, StoredDocument

if TYPE_CHECKING:
    from anomaly_results.config import StoreConfig


def create_store(config: StoreConfig) -> DocumentStore:
    """Build the document store named by ``config.backend``."""
    backend = config.backend.lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "elasticsearch":
        from anomaly_results.store.elasticsearch import ElasticsearchDocumentStore

        return ElasticsearchDocumentStore.from_config(config)
    raise ConfigurationError.unknown_backend(config.backend)


__all__ = [
    "BulkItem",
    "BulkItemResult",
    "BulkResponse",
    "DocumentFilter",
    "DocumentStore",
    "InMemoryDocumentStore",
    "StoredDocument",
    "create_store",
]
