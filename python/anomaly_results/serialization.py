"""
Conversion of result models into document bodies.

Document field names are the models' field names; datetimes are rendered
as ISO-8601 strings. Document ids never appear in a body, they travel
alongside it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from anomaly_results.exceptions import SerializationError
from anomaly_results.models import Bucket, BucketInfluencer

PARTITION_NORMALIZED_PROBS = "partition_normalized_probs"


class ResultSerializer:
    """Turns result models into JSON-compatible document bodies."""

    BUCKET_EXCLUDE = frozenset({"id", "records", "influencers"})
    DEFAULT_EXCLUDE = frozenset({"id"})

    def serialize(
        self, kind: str, obj: BaseModel, exclude: frozenset[str] | None = None
    ) -> dict[str, Any]:
        """
        Serialize a model to a document body.

        Raises:
            SerializationError: If the object is not a model or cannot be dumped.
        """
        if not isinstance(obj, BaseModel):
            raise SerializationError.failed(kind, f"unsupported type {type(obj).__name__}")
        try:
            return obj.model_dump(
                mode="json",
                exclude=set(exclude if exclude is not None else self.DEFAULT_EXCLUDE),
                exclude_none=True,
            )
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise SerializationError.failed(kind, str(e), cause=e) from e

    def bucket(self, bucket: Bucket) -> dict[str, Any]:
        """Bucket body; records and influencers are written as their own documents."""
        return self.serialize("bucket", bucket, exclude=self.BUCKET_EXCLUDE)

    def bucket_influencer_standalone(
        self,
        bucket_influencer: BucketInfluencer,
        bucket_time: datetime,
        is_interim: bool,
    ) -> dict[str, Any]:
        """Standalone copy of a bucket influencer carrying the bucket's time and interim flag."""
        copy = bucket_influencer.model_copy(
            update={"timestamp": bucket_time, "is_interim": is_interim}
        )
        return self.serialize("bucketInfluencer", copy, exclude=frozenset())

    def partition_max_probabilities(self, job_id: str, bucket: Bucket) -> dict[str, Any]:
        """Summary of the maximum normalized probability per partition value."""
        return {
            "timestamp": bucket.timestamp.isoformat(),
            "job_id": job_id,
            PARTITION_NORMALIZED_PROBS: [
                {
                    "partition_field_value": value,
                    "max_normalized_probability": probability,
                }
                for value, probability in bucket.per_partition_max_probability.items()
            ],
        }
