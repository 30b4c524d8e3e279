"""
Result data models produced by an anomaly detection job.

A Bucket is the top level aggregate: one fixed-width time window holding the
anomaly records, bucket influencers and influencers found in that window.
The remaining models are standalone outputs written alongside buckets.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class AnomalyRecord(BaseModel):
    """One detector's anomalous output inside a bucket."""

    job_id: str = Field(..., description="Job that produced this record")
    id: str | None = Field(default=None, description="Document id, assigned by the store on first write")
    detector_index: int = Field(default=0, description="Index of the detector that produced the record")
    probability: float = Field(default=0.0, ge=0.0, le=1.0, description="Probability of the observed value")
    anomaly_score: float = Field(default=0.0, description="Normalized anomaly score")
    normalized_probability: float = Field(default=0.0, description="Normalized probability (0-100)")
    initial_normalized_probability: float = Field(default=0.0, description="Score before renormalization")
    actual: list[float] | None = Field(default=None, description="Actual values")
    typical: list[float] | None = Field(default=None, description="Typical values")
    function: str | None = Field(default=None, description="Detector function")
    field_name: str | None = Field(default=None, description="Analysed field")
    by_field_name: str | None = Field(default=None)
    by_field_value: str | None = Field(default=None)
    over_field_name: str | None = Field(default=None)
    over_field_value: str | None = Field(default=None)
    partition_field_name: str | None = Field(default=None)
    partition_field_value: str | None = Field(default=None)
    timestamp: datetime | None = Field(default=None, description="Inherited from the parent bucket")
    is_interim: bool = Field(default=False, description="Whether the record is provisional")


class BucketInfluencer(BaseModel):
    """A field found to explain a bucket's anomaly."""

    job_id: str = Field(..., description="Job that produced this influencer")
    influencer_field_name: str = Field(..., description="Name of the influencing field")
    anomaly_score: float = Field(default=0.0)
    initial_anomaly_score: float = Field(default=0.0)
    raw_anomaly_score: float = Field(default=0.0)
    probability: float = Field(default=0.0, ge=0.0, le=1.0)
    timestamp: datetime | None = Field(default=None, description="Stamped from the bucket when persisted")
    is_interim: bool = Field(default=False)


class Influencer(BaseModel):
    """A field value found to be unusually influential at a point in time."""

    job_id: str = Field(..., description="Job that produced this influencer")
    id: str | None = Field(default=None, description="Document id, assigned by the store on first write")
    influencer_field_name: str = Field(..., description="Name of the influencing field")
    influencer_field_value: str = Field(..., description="Value of the influencing field")
    probability: float = Field(default=0.0, ge=0.0, le=1.0)
    anomaly_score: float = Field(default=0.0)
    initial_anomaly_score: float = Field(default=0.0)
    timestamp: datetime | None = Field(default=None)
    is_interim: bool = Field(default=False)


class PartitionScore(BaseModel):
    """Anomaly score for one partition value inside a bucket."""

    partition_field_name: str
    partition_field_value: str
    anomaly_score: float = 0.0
    probability: float = 0.0


class Bucket(BaseModel):
    """
    One fixed-width time window of analysis output.

    ``records`` distinguishes absence (None: nothing to persist) from an empty
    list (persist the bucket itself, but no record documents).
    """

    job_id: str = Field(..., description="Job that produced this bucket")
    id: str | None = Field(default=None, description="Document id, assigned by the store on first write")
    timestamp: datetime = Field(..., description="Start of the bucket window")
    bucket_span: int = Field(default=0, description="Bucket span in seconds")
    anomaly_score: float = Field(default=0.0)
    initial_anomaly_score: float = Field(default=0.0)
    max_normalized_probability: float = Field(default=0.0)
    record_count: int = Field(default=0)
    event_count: int = Field(default=0)
    is_interim: bool = Field(default=False)
    processing_time_ms: int = Field(default=0)
    records: list[AnomalyRecord] | None = Field(default=None)
    bucket_influencers: list[BucketInfluencer] | None = Field(default_factory=list)
    influencers: list[Influencer] | None = Field(default_factory=list)
    partition_scores: list[PartitionScore] = Field(default_factory=list)
    per_partition_max_probability: dict[str, float] = Field(
        default_factory=dict,
        description="Maximum normalized probability per partition value",
    )

    @property
    def epoch(self) -> int:
        """Bucket start as seconds since the epoch."""
        return int(self.timestamp.timestamp())


class CategoryDefinition(BaseModel):
    """A learned message category."""

    job_id: str
    category_id: int = Field(..., description="Category id, also the document id")
    terms: str = Field(default="")
    regex: str = Field(default="")
    max_matching_length: int = Field(default=0)
    examples: list[str] = Field(default_factory=list)


class Quantiles(BaseModel):
    """Model normalization state. Exactly one document per job."""

    QUANTILES_ID: ClassVar[str] = "hierarchical"

    job_id: str
    timestamp: datetime | None = Field(default=None)
    quantile_state: str = Field(default="", description="Opaque normalizer state")


class MemoryStatus(str, Enum):
    """Memory status reported with model size stats."""

    OK = "ok"
    SOFT_LIMIT = "soft_limit"
    HARD_LIMIT = "hard_limit"


class ModelSizeStats(BaseModel):
    """
    Memory usage sample.

    Samples carry no id of their own: the latest one always lives under
    LATEST_ID and every sample is also appended under a store-assigned id.
    """

    model_config = ConfigDict(protected_namespaces=())

    LATEST_ID: ClassVar[str] = "modelSizeStats"

    job_id: str
    model_bytes: int = Field(default=0)
    total_by_field_count: int = Field(default=0)
    total_over_field_count: int = Field(default=0)
    total_partition_field_count: int = Field(default=0)
    bucket_allocation_failures_count: int = Field(default=0)
    memory_status: MemoryStatus = Field(default=MemoryStatus.OK)
    timestamp: datetime | None = Field(default=None)
    log_time: datetime | None = Field(default=None)


class ModelSnapshot(BaseModel):
    """Description of a saved model checkpoint. The model state itself is stored separately."""

    job_id: str
    snapshot_id: str
    timestamp: datetime | None = Field(default=None)
    description: str | None = Field(default=None)
    restore_priority: int = Field(default=0)
    snapshot_doc_count: int = Field(default=0)
    latest_record_time_stamp: datetime | None = Field(default=None)
    latest_result_time_stamp: datetime | None = Field(default=None)


class ModelDebugOutput(BaseModel):
    """Debug/trace sample. Unknown fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    job_id: str
    timestamp: datetime | None = Field(default=None)
    partition_field_name: str | None = Field(default=None)
    partition_field_value: str | None = Field(default=None)
    by_field_name: str | None = Field(default=None)
    by_field_value: str | None = Field(default=None)
    debug_feature: str | None = Field(default=None)
    debug_lower: float | None = Field(default=None)
    debug_upper: float | None = Field(default=None)
    debug_median: float | None = Field(default=None)
    actual: float | None = Field(default=None)
