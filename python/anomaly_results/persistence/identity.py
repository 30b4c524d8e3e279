"""
Document identity policy.

Decides, per document kind, whether the document id is chosen by us
(deterministic, so repeated writes overwrite) or left to the store
(opaque, so repeated writes append), and how each kind is serialized.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from anomaly_results.config import DEFAULT_INDEX_PREFIX
from anomaly_results.models import ModelSizeStats, Quantiles
from anomaly_results.serialization import ResultSerializer


class DocumentKind(str, Enum):
    """Kind label stored with every document."""

    BUCKET = "bucket"
    RECORD = "record"
    BUCKET_INFLUENCER = "bucketInfluencer"
    INFLUENCER = "influencer"
    PARTITION_NORMALIZED_PROB = "partitionNormalizedProb"
    CATEGORY_DEFINITION = "categoryDefinition"
    QUANTILES = "quantiles"
    MODEL_SNAPSHOT = "modelSnapshot"
    MODEL_SIZE_STATS = "modelSizeStats"
    MODEL_DEBUG_OUTPUT = "modelDebugOutput"


def job_index_name(job_id: str, prefix: str = DEFAULT_INDEX_PREFIX) -> str:
    """Name of the collection holding every document of a job."""
    return prefix + job_id


def bucket_influencer_id(bucket_id: str, influencer_field_name: str) -> str:
    """
    Id of a standalone bucket influencer copy.

    Plain concatenation, no delimiter: the same field in the same bucket always
    maps to the same id, so renormalization overwrites instead of appending.
    """
    return bucket_id + influencer_field_name


def store_assigned(_obj: Any) -> str | None:
    """Id resolver that leaves the id to the store."""
    return None


@dataclass(frozen=True)
class Persistable:
    """
    How one kind of standalone result is written: its kind label, how its id
    is resolved and how it is serialized.
    """

    kind: DocumentKind
    id_resolver: Callable[[Any], str | None]
    serializer: Callable[[Any], dict[str, Any]]

    def resolve_id(self, obj: Any) -> str | None:
        return self.id_resolver(obj)

    def serialize(self, obj: Any) -> dict[str, Any]:
        return self.serializer(obj)


class IdentityPolicy:
    """Persistable strategies for every standalone result kind."""

    def __init__(self, serializer: ResultSerializer | None = None) -> None:
        self._serializer = serializer or ResultSerializer()

        self.category_definition = self._persistable(
            DocumentKind.CATEGORY_DEFINITION, lambda c: str(c.category_id)
        )
        # One quantiles document per job: every write replaces it
        self.quantiles = self._persistable(
            DocumentKind.QUANTILES, lambda _q: Quantiles.QUANTILES_ID
        )
        self.model_snapshot = self._persistable(
            DocumentKind.MODEL_SNAPSHOT, lambda s: s.snapshot_id
        )
        self.model_size_stats_latest = self._persistable(
            DocumentKind.MODEL_SIZE_STATS, lambda _s: ModelSizeStats.LATEST_ID
        )
        self.model_size_stats_history = self._persistable(
            DocumentKind.MODEL_SIZE_STATS, store_assigned
        )
        self.model_debug_output = self._persistable(
            DocumentKind.MODEL_DEBUG_OUTPUT, store_assigned
        )
        self.influencer = self._persistable(DocumentKind.INFLUENCER, lambda i: i.id)

    @property
    def serializer(self) -> ResultSerializer:
        return self._serializer

    def _persistable(
        self, kind: DocumentKind, id_resolver: Callable[[Any], str | None]
    ) -> Persistable:
        return Persistable(
            kind=kind,
            id_resolver=id_resolver,
            serializer=lambda obj: self._serializer.serialize(kind.value, obj),
        )
