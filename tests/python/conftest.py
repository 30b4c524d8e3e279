"""Pytest configuration and shared fixtures for Python tests."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from anomaly_results.models import AnomalyRecord, Bucket, BucketInfluencer, Influencer
from anomaly_results.store.base import BulkItemResult, BulkResponse, DocumentStore

JOB_ID = "farequote"
INDEX = "prelertresults-farequote"
BUCKET_TIME = datetime(2016, 6, 1, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def accept_all(_index: str, items: list) -> BulkResponse:
    """Bulk side effect that accepts every item, assigning ids where missing."""
    return BulkResponse(
        items=[
            BulkItemResult(doc_id=item.doc_id or f"auto-{position}", kind=item.kind)
            for position, item in enumerate(items)
        ]
    )


@pytest.fixture
def mock_store() -> MagicMock:
    """Store double that records calls and accepts every write."""
    store = MagicMock(spec=DocumentStore)
    store.upsert.return_value = "bucket-1"
    store.bulk_upsert.side_effect = accept_all
    store.bulk_delete_by_filter.return_value = 0
    store.bulk_raw.return_value = BulkResponse()
    return store


@pytest.fixture
def make_bucket():
    """Factory for a bucket with records, influencers and a partition summary."""

    def _make(
        records: list[AnomalyRecord] | None = None,
        field_names: tuple[str, ...] = ("host",),
        is_interim: bool = False,
    ) -> Bucket:
        return Bucket(
            job_id=JOB_ID,
            timestamp=BUCKET_TIME,
            bucket_span=300,
            anomaly_score=72.5,
            is_interim=is_interim,
            records=records,
            bucket_influencers=[
                BucketInfluencer(
                    job_id=JOB_ID,
                    influencer_field_name=name,
                    anomaly_score=60.0,
                    probability=0.01,
                )
                for name in field_names
            ],
            influencers=[
                Influencer(
                    job_id=JOB_ID,
                    influencer_field_name="host",
                    influencer_field_value="web-01",
                    probability=0.02,
                )
            ],
            per_partition_max_probability={"airline=AAL": 90.0, "airline=JZA": 12.5},
        )

    return _make


@pytest.fixture
def two_records() -> list[AnomalyRecord]:
    """Records R1 (probability 0.01) and R2 (probability 0.2)."""
    return [
        AnomalyRecord(job_id=JOB_ID, detector_index=0, probability=0.01, anomaly_score=80.0),
        AnomalyRecord(job_id=JOB_ID, detector_index=1, probability=0.2, anomaly_score=20.0),
    ]
