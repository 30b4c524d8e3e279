"""
Results persister.

Writes the output of an anomaly detection job into the job's document
collection and rewrites parts of it after renormalization.

Buckets are decomposed into documents:
- the bucket body, under a store-assigned id captured back onto the bucket
- one standalone copy per bucket influencer, id = bucket id + field name,
  so renormalization overwrites it in place
- the bucket's influencers and records, batched, store-assigned ids; records
  carry the bucket id as parent
- a per-partition max probability summary, id = bucket id

Every write is best effort. Serialization errors, store errors and partial
batch failures are logged and returned as warnings on the WriteOutcome;
nothing is raised to the caller. Only quantiles force a refresh, because
their readers search for them straight after they are written.

The persister holds no per-job state: the job id is passed to every call,
so one instance serves any number of jobs.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, TypeVar

from anomaly_results.config import DEFAULT_INDEX_PREFIX, Config, PersisterConfig, get_config
from anomaly_results.exceptions import SerializationError, StoreError
from anomaly_results.logging import ensure_logging, get_logger, with_context
from anomaly_results.persistence.bulk import BatchResult, BatchWriter
from anomaly_results.persistence.deleter import InterimResultsDeleter
from anomaly_results.persistence.identity import (
    DocumentKind,
    IdentityPolicy,
    Persistable,
    bucket_influencer_id,
    job_index_name,
)
from anomaly_results.persistence.outcome import WriteOutcome
from anomaly_results.serialization import ResultSerializer
from anomaly_results.store import create_store

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from concurrent.futures import Future
    from datetime import datetime

    from anomaly_results.models import (
        AnomalyRecord,
        Bucket,
        BucketInfluencer,
        CategoryDefinition,
        Influencer,
        ModelDebugOutput,
        ModelSizeStats,
        ModelSnapshot,
        Quantiles,
    )
    from anomaly_results.store.base import DocumentStore

logger = get_logger(__name__)

F = TypeVar("F", bound="Callable[..., Any]")


def job_operation(func: F) -> F:
    """
    Bind the job id and operation name to every log entry made during the call.

    The wrapped method takes the job id as its first argument.
    """

    @functools.wraps(func)
    def wrapper(self: Any, job_id: str, *args: Any, **kwargs: Any) -> Any:
        with with_context(job_id=job_id, operation=func.__name__):
            return func(self, job_id, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class ResultsPersister:
    """
    Coordinates writes of job results to a document store.

    Usage:
        persister = ResultsPersister.from_config()
        persister.persist_bucket("farequote", bucket)
        persister.persist_quantiles("farequote", quantiles)
        persister.update_records("farequote", bucket.id, renormalized_records)
    """

    def __init__(
        self,
        store: DocumentStore,
        serializer: ResultSerializer | None = None,
        config: PersisterConfig | None = None,
        index_prefix: str | None = None,
    ) -> None:
        """
        Initialize the persister.

        Args:
            store: Document store shared by every job.
            serializer: Result serializer. A default one is created if None.
            config: Persister configuration. Defaults are used if None.
            index_prefix: Prefix of every job collection name.
        """
        self._store = store
        self._serializer = serializer or ResultSerializer()
        self._identity = IdentityPolicy(self._serializer)
        self._config = config or PersisterConfig()
        self._index_prefix = index_prefix if index_prefix is not None else DEFAULT_INDEX_PREFIX
        self._deleter = InterimResultsDeleter(
            store,
            max_workers=self._config.background_workers,
            interim_field=self._config.interim_field,
        )

    @classmethod
    def from_config(cls, config: Config | None = None) -> ResultsPersister:
        """
        Create a persister and its store from configuration.

        Args:
            config: Full configuration. Uses global config if None.
        """
        if config is None:
            config = get_config()
        ensure_logging()

        store = create_store(config.store)
        logger.info(
            "results_persister_created",
            backend=config.store.backend,
            index_prefix=config.store.index_prefix,
        )
        return cls(
            store=store,
            config=config.persister,
            index_prefix=config.store.index_prefix,
        )

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def identity(self) -> IdentityPolicy:
        return self._identity

    def index_name(self, job_id: str) -> str:
        """Collection holding the job's documents."""
        return job_index_name(job_id, self._index_prefix)

    # Buckets

    @job_operation
    def persist_bucket(self, job_id: str, bucket: Bucket) -> WriteOutcome:
        """
        Persist a bucket and its children.

        A bucket whose records are None is not persisted at all. Each step
        below is attempted regardless of earlier failures, except that
        children needing the bucket id are skipped when the bucket body
        could not be written.
        """
        outcome = WriteOutcome(operation="persist_bucket", job_id=job_id)
        if bucket.records is None:
            return outcome.skip("bucket has no record collection")

        index = self.index_name(job_id)
        bucket_id: str | None = None

        try:
            body = self._serializer.bucket(bucket)
            logger.debug(
                "store_call_index",
                kind=DocumentKind.BUCKET.value,
                index=index,
                epoch=bucket.epoch,
            )
            bucket_id = self._store.upsert(index, DocumentKind.BUCKET.value, None, body)
            bucket.id = bucket_id
            outcome.documents_written += 1
        except (SerializationError, StoreError) as e:
            logger.error("bucket_write_failed", index=index, error=e.to_dict())
            outcome.fail(f"bucket write failed: {e}")

        if bucket_id is not None:
            outcome.record_batch(
                self._persist_bucket_influencers(
                    index,
                    bucket_id,
                    bucket.bucket_influencers,
                    bucket.timestamp,
                    bucket.is_interim,
                )
            )
        else:
            outcome.warn("bucket influencers skipped: bucket has no id")

        if bucket.influencers:
            outcome.record_batch(self._persist_influencers(index, bucket))

        if bucket.records:
            if bucket_id is not None:
                outcome.record_batch(self._persist_records(index, bucket_id, bucket))
            else:
                outcome.warn("records skipped: bucket has no id")

        if bucket_id is not None:
            self._persist_per_partition_max_probabilities(job_id, index, bucket, outcome)

        logger.debug("bucket_persisted", **outcome.to_dict(), bucket_id=bucket_id)
        return outcome

    @job_operation
    def update_bucket(self, job_id: str, bucket: Bucket) -> WriteOutcome:
        """
        Overwrite a previously persisted bucket, then its standalone bucket
        influencers and its per-partition summary.

        A failure writing the bucket body stops the update.
        """
        outcome = WriteOutcome(operation="update_bucket", job_id=job_id)
        if bucket.id is None:
            logger.warning("bucket_update_without_id", epoch=bucket.epoch)
            return outcome.fail("bucket has no id; it was never persisted")

        index = self.index_name(job_id)
        try:
            body = self._serializer.bucket(bucket)
            logger.debug(
                "store_call_index",
                kind=DocumentKind.BUCKET.value,
                index=index,
                doc_id=bucket.id,
            )
            self._store.upsert(index, DocumentKind.BUCKET.value, bucket.id, body)
            outcome.documents_written += 1
        except (SerializationError, StoreError) as e:
            logger.error("bucket_update_failed", bucket_id=bucket.id, error=e.to_dict())
            return outcome.fail(f"bucket update failed: {e}")

        influencers = self._persist_bucket_influencers(
            index, bucket.id, bucket.bucket_influencers, bucket.timestamp, bucket.is_interim
        )
        outcome.record_batch(influencers)
        if influencers.call_failed:
            logger.error("bucket_influencer_update_failed", bucket_id=bucket.id)
            return outcome

        self._persist_per_partition_max_probabilities(job_id, index, bucket, outcome)
        return outcome

    @job_operation
    def update_records(
        self, job_id: str, bucket_id: str, records: Sequence[AnomalyRecord]
    ) -> WriteOutcome:
        """
        Overwrite records at their existing ids, as children of ``bucket_id``.

        Records without an id were never persisted and are skipped.
        """
        outcome = WriteOutcome(operation="update_records", job_id=job_id)
        index = self.index_name(job_id)
        writer = BatchWriter(self._store, index, DocumentKind.RECORD)

        for record in records:
            if record.id is None:
                logger.warning("record_update_without_id", bucket_id=bucket_id)
                outcome.warn("record without id skipped")
                continue
            writer.add(
                record.id,
                lambda r=record: self._serializer.serialize(DocumentKind.RECORD.value, r),
                parent=bucket_id,
                ref=record,
            )

        if len(writer) == 0 and not outcome.warnings:
            return outcome.skip("no records to update")

        outcome.record_batch(writer.execute())
        return outcome

    def _persist_bucket_influencers(
        self,
        index: str,
        bucket_id: str,
        bucket_influencers: Sequence[BucketInfluencer] | None,
        bucket_time: datetime,
        is_interim: bool,
    ) -> BatchResult:
        writer = BatchWriter(self._store, index, DocumentKind.BUCKET_INFLUENCER)
        for bucket_influencer in bucket_influencers or []:
            writer.add(
                bucket_influencer_id(bucket_id, bucket_influencer.influencer_field_name),
                lambda bi=bucket_influencer: self._serializer.bucket_influencer_standalone(
                    bi, bucket_time, is_interim
                ),
                ref=bucket_influencer,
            )
        return writer.execute()

    def _persist_influencers(self, index: str, bucket: Bucket) -> BatchResult:
        writer = BatchWriter(self._store, index, DocumentKind.INFLUENCER)
        for influencer in bucket.influencers or []:
            influencer.timestamp = bucket.timestamp
            influencer.is_interim = bucket.is_interim
            writer.add(
                None,
                lambda i=influencer: self._serializer.serialize(DocumentKind.INFLUENCER.value, i),
                ref=influencer,
            )
        result = writer.execute()
        for influencer, doc_id in result.assigned:
            influencer.id = doc_id
        return result

    def _persist_records(self, index: str, bucket_id: str, bucket: Bucket) -> BatchResult:
        writer = BatchWriter(self._store, index, DocumentKind.RECORD)
        for record in bucket.records or []:
            record.timestamp = bucket.timestamp
            writer.add(
                None,
                lambda r=record: self._serializer.serialize(DocumentKind.RECORD.value, r),
                parent=bucket_id,
                ref=record,
            )
        result = writer.execute()
        for record, doc_id in result.assigned:
            record.id = doc_id
        return result

    def _persist_per_partition_max_probabilities(
        self, job_id: str, index: str, bucket: Bucket, outcome: WriteOutcome
    ) -> None:
        if not bucket.per_partition_max_probability:
            return

        kind = DocumentKind.PARTITION_NORMALIZED_PROB.value
        try:
            body = self._serializer.partition_max_probabilities(job_id, bucket)
            logger.debug("store_call_index", kind=kind, index=index, doc_id=bucket.id)
            self._store.upsert(index, kind, bucket.id, body)
            outcome.documents_written += 1
        except (SerializationError, StoreError) as e:
            logger.error(
                "partition_max_probability_write_failed",
                bucket_id=bucket.id,
                error=e.to_dict(),
            )
            outcome.warn(f"per-partition max probabilities not written: {e}")

    # Standalone results

    def _persist(
        self, job_id: str, persistable: Persistable, obj: Any, operation: str
    ) -> WriteOutcome:
        """Write one standalone result. A None object means there is nothing to do."""
        outcome = WriteOutcome(operation=operation, job_id=job_id)
        kind = persistable.kind.value

        if obj is None:
            logger.warning("nothing_to_persist", kind=kind)
            return outcome.skip(f"No {kind} to persist for job {job_id}")

        index = self.index_name(job_id)
        doc_id = persistable.resolve_id(obj)
        logger.debug(
            "store_call_index",
            kind=kind,
            index=index,
            doc_id=doc_id if doc_id is not None else "auto-generated",
        )

        try:
            self._store.upsert(index, kind, doc_id, persistable.serialize(obj))
        except (SerializationError, StoreError) as e:
            logger.error("result_write_failed", kind=kind, error=e.to_dict())
            return outcome.fail(f"Error writing {kind}: {e}")

        outcome.documents_written = 1
        return outcome

    @job_operation
    def persist_category_definition(
        self, job_id: str, category: CategoryDefinition | None
    ) -> WriteOutcome:
        # No commit: these arrive in bulk and this process never reads them back
        return self._persist(
            job_id, self._identity.category_definition, category, "persist_category_definition"
        )

    @job_operation
    def persist_quantiles(self, job_id: str, quantiles: Quantiles | None) -> WriteOutcome:
        """
        Persist quantiles under the job's fixed quantiles id, then refresh
        the collection so readers searching for them find the new ones.
        """
        outcome = self._persist(job_id, self._identity.quantiles, quantiles, "persist_quantiles")
        if outcome.persisted and not self.commit_writes(job_id):
            outcome.warn("quantiles written but refresh failed")
        return outcome

    @job_operation
    def persist_model_snapshot(
        self, job_id: str, snapshot: ModelSnapshot | None
    ) -> WriteOutcome:
        """Persist a model snapshot description. The model state itself is stored separately."""
        return self._persist(
            job_id, self._identity.model_snapshot, snapshot, "persist_model_snapshot"
        )

    @job_operation
    def persist_model_size_stats(
        self, job_id: str, stats: ModelSizeStats | None
    ) -> WriteOutcome:
        """
        Persist a memory usage sample twice: under the fixed latest id, which
        each sample overwrites, and under a store-assigned id to keep history.
        """
        if stats is None:
            return self._persist(
                job_id, self._identity.model_size_stats_latest, None, "persist_model_size_stats"
            )

        logger.debug("persisting_model_size_stats", model_bytes=stats.model_bytes)
        outcome = self._persist(
            job_id, self._identity.model_size_stats_latest, stats, "persist_model_size_stats"
        )
        outcome.absorb(
            self._persist(
                job_id, self._identity.model_size_stats_history, stats, "persist_model_size_stats"
            )
        )
        return outcome

    @job_operation
    def persist_model_debug_output(
        self, job_id: str, output: ModelDebugOutput | None
    ) -> WriteOutcome:
        return self._persist(
            job_id, self._identity.model_debug_output, output, "persist_model_debug_output"
        )

    @job_operation
    def persist_influencer(self, job_id: str, influencer: Influencer | None) -> WriteOutcome:
        return self._persist(job_id, self._identity.influencer, influencer, "persist_influencer")

    @job_operation
    def update_influencer(self, job_id: str, influencer: Influencer | None) -> WriteOutcome:
        """Rewrite an influencer at its id; same write as persisting it."""
        return self._persist(job_id, self._identity.influencer, influencer, "update_influencer")

    @job_operation
    def persist_bulk_state(self, job_id: str, payload: bytes) -> WriteOutcome:
        """Submit pre-formatted bulk state as-is; it is not validated here."""
        outcome = WriteOutcome(operation="persist_bulk_state", job_id=job_id)
        if not payload:
            return outcome.skip("empty bulk state")

        logger.debug("store_call_bulk", payload_bytes=len(payload))
        try:
            response = self._store.bulk_raw(payload)
        except StoreError as e:
            logger.error("bulk_state_write_failed", error=e.to_dict())
            return outcome.fail(f"Error persisting bulk state: {e}")

        outcome.documents_written = len(response.items) - response.failed_count
        if response.has_failures:
            message = response.build_failure_message()
            logger.error("bulk_state_has_errors", failure_message=message)
            outcome.warn(message)
        return outcome

    # Visibility and cleanup

    @job_operation
    def commit_writes(self, job_id: str) -> bool:
        """
        Refresh the job's collection, blocking until earlier writes are
        visible to searches.

        Returns:
            False if the refresh failed.
        """
        index = self.index_name(job_id)
        logger.debug("store_call_refresh", index=index)
        try:
            self._store.refresh(index)
        except StoreError as e:
            logger.error("refresh_failed", index=index, error=e.to_dict())
            return False
        return True

    @job_operation
    def delete_interim_results(self, job_id: str) -> Future[int] | None:
        """
        Delete the job's interim results in the background.

        Nobody waits for the deletion and its outcome is only logged. The
        returned future is tracked so close() can drain it.
        """
        return self._deleter.delete_interim_results(self.index_name(job_id))

    def close(self, wait: bool = True) -> None:
        """
        Drain background deletions and release the store.

        The store is left open while a deletion is still running on it.
        """
        drained = self._deleter.shutdown(
            wait_for_pending=wait, timeout=self._config.shutdown_timeout_seconds
        )
        if not drained:
            logger.warning("store_close_skipped", pending=self._deleter.pending_count)
            return
        self._store.close()

    def __enter__(self) -> ResultsPersister:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# Module-level singleton
_results_persister: ResultsPersister | None = None


def get_results_persister() -> ResultsPersister:
    """
    Get the global results persister.

    Returns:
        The singleton ResultsPersister, built from the global config on first use.
    """
    global _results_persister
    if _results_persister is None:
        _results_persister = ResultsPersister.from_config()
    return _results_persister


def set_results_persister(persister: ResultsPersister | None) -> None:
    """
    Set the global results persister.

    Args:
        persister: The ResultsPersister to use globally, or None to reset.
    """
    global _results_persister
    _results_persister = persister
