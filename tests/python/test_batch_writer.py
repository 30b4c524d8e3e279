"""
Tests for batched sibling writes and write outcomes.

Tests cover:
- One bulk call per batch, none for an empty batch
- Per-item serialization failures
- Partial store rejections and whole-call failures
- Folding batch results into a WriteOutcome
"""

from __future__ import annotations

from unittest.mock import MagicMock

from anomaly_results.exceptions import SerializationError, StoreError
from anomaly_results.persistence import (
    BatchResult,
    BatchWriter,
    DocumentKind,
    OutcomeStatus,
    WriteOutcome,
)
from anomaly_results.store.base import BulkItemResult, BulkResponse

INDEX = "prelertresults-farequote"


def failing_render() -> dict:
    raise SerializationError.failed("record", "bad value")


class TestBatchWriter:
    """Tests for BatchWriter."""

    def test_empty_batch_makes_no_call(self, mock_store: MagicMock) -> None:
        """Test executing an empty batch does not reach the store."""
        result = BatchWriter(mock_store, INDEX, DocumentKind.RECORD).execute()

        assert result.submitted == 0
        mock_store.bulk_upsert.assert_not_called()

    def test_single_call_for_all_items(self, mock_store: MagicMock) -> None:
        """Test every queued item goes out in one bulk call."""
        writer = BatchWriter(mock_store, INDEX, DocumentKind.RECORD)
        for n in range(3):
            writer.add(None, lambda n=n: {"n": n}, parent="bucket-1", ref=n)

        result = writer.execute()

        mock_store.bulk_upsert.assert_called_once()
        index, items = mock_store.bulk_upsert.call_args.args
        assert index == INDEX
        assert [item.body for item in items] == [{"n": 0}, {"n": 1}, {"n": 2}]
        assert all(item.parent == "bucket-1" for item in items)
        assert all(item.kind == "record" for item in items)
        assert result.succeeded == 3
        assert result.assigned == [(0, "auto-0"), (1, "auto-1"), (2, "auto-2")]

    def test_serialization_failure_drops_item(self, mock_store: MagicMock) -> None:
        """Test an item that cannot be rendered is dropped, the rest still sent."""
        writer = BatchWriter(mock_store, INDEX, DocumentKind.RECORD)

        assert writer.add("r1", lambda: {"ok": True}) is True
        assert writer.add("r2", failing_render) is False
        assert len(writer) == 1

        result = writer.execute()

        assert result.submitted == 1
        assert result.has_failures
        assert "bad value" in result.serialization_errors[0]

    def test_partial_rejection(self, mock_store: MagicMock) -> None:
        """Test rejected items are counted and aggregated into one message."""
        mock_store.bulk_upsert.side_effect = None
        mock_store.bulk_upsert.return_value = BulkResponse(
            items=[
                BulkItemResult(doc_id="a", kind="record"),
                BulkItemResult(doc_id="b", kind="record", error="version_conflict"),
                BulkItemResult(doc_id="c", kind="record"),
            ]
        )
        writer = BatchWriter(mock_store, INDEX, DocumentKind.RECORD)
        for ref in ("x", "y", "z"):
            writer.add(None, lambda: {}, ref=ref)

        result = writer.execute()

        assert result.failed == 1
        assert result.succeeded == 2
        assert result.assigned == [("x", "a"), ("z", "c")]
        assert result.failure_message.startswith("failure in bulk execution:")
        assert "[1]: index [record], id [b], message [version_conflict]" in result.failure_message
        assert not result.call_failed

    def test_call_failure(self, mock_store: MagicMock) -> None:
        """Test a failing bulk call is reported, not raised."""
        mock_store.bulk_upsert.side_effect = StoreError.bulk_failed(INDEX, 2, "timeout")
        writer = BatchWriter(mock_store, INDEX, DocumentKind.INFLUENCER)
        writer.add(None, lambda: {})
        writer.add(None, lambda: {})

        result = writer.execute()

        assert result.call_failed
        assert result.failed == 2
        assert result.succeeded == 0
        assert result.assigned == []
        assert "timeout" in result.error


class TestWriteOutcome:
    """Tests for WriteOutcome."""

    def test_defaults(self) -> None:
        outcome = WriteOutcome(operation="persist_quantiles", job_id="farequote")

        assert outcome.status == OutcomeStatus.DONE
        assert outcome.persisted
        assert not outcome.has_warnings

    def test_skip_and_fail(self) -> None:
        skipped = WriteOutcome(operation="op", job_id="j").skip("nothing")
        failed = WriteOutcome(operation="op", job_id="j").fail("broken")

        assert skipped.status == OutcomeStatus.SKIPPED
        assert not skipped.persisted
        assert skipped.warnings == ["nothing"]
        assert failed.status == OutcomeStatus.FAILED

    def test_record_batch_partial_failure_stays_done(self) -> None:
        """Test batch failures become warnings without failing the outcome."""
        outcome = WriteOutcome(operation="persist_bucket", job_id="j")
        outcome.record_batch(
            BatchResult(kind="record", submitted=5, failed=2, failure_message="failure in bulk execution:")
        )

        assert outcome.status == OutcomeStatus.DONE
        assert outcome.documents_written == 3
        assert outcome.warnings == ["failure in bulk execution:"]

    def test_record_batch_call_error(self) -> None:
        outcome = WriteOutcome(operation="persist_bucket", job_id="j")
        outcome.record_batch(BatchResult(kind="record", submitted=2, failed=2, error="timeout"))

        assert outcome.documents_written == 0
        assert outcome.warnings == ["timeout"]

    def test_absorb(self) -> None:
        """Test a failed sub-operation fails the merged outcome."""
        outcome = WriteOutcome(operation="op", job_id="j", documents_written=1)
        outcome.absorb(WriteOutcome(operation="op", job_id="j").fail("history write failed"))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.documents_written == 1
        assert outcome.warnings == ["history write failed"]

    def test_to_dict(self) -> None:
        data = WriteOutcome(operation="op", job_id="j").skip("nothing").to_dict()

        assert data["status"] == "skipped"
        assert data["warnings"] == ["nothing"]
