"""
Background removal of interim results.

Interim results are provisional and get superseded by final ones. Deleting
them runs on a background worker and nobody waits for it: the outcome is
only logged. Submitted deletions are tracked so shutdown can drain them.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from anomaly_results.exceptions import StoreError
from anomaly_results.logging import get_logger
from anomaly_results.store.base import DocumentFilter

if TYPE_CHECKING:
    from anomaly_results.store.base import DocumentStore

logger = get_logger(__name__)


class InterimResultsDeleter:
    """Deletes a job's interim documents and refreshes the collection, in the background."""

    def __init__(
        self,
        store: DocumentStore,
        max_workers: int = 1,
        interim_field: str = "is_interim",
    ) -> None:
        self._store = store
        self._filter = DocumentFilter(field=interim_field, value=True)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="interim-delete"
        )
        self._pending: set[Future[int]] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending_count(self) -> int:
        """Deletions submitted but not yet finished."""
        with self._lock:
            return len(self._pending)

    def delete_interim_results(self, index: str) -> Future[int] | None:
        """
        Schedule deletion of every interim document in ``index``.

        The returned future is for draining and tests; callers are not
        expected to wait on it. Returns None once the deleter is closed.
        """
        with self._lock:
            if self._closed:
                logger.warning("interim_delete_after_close", index=index)
                return None
            future = self._executor.submit(self._delete_and_commit, index)
            self._pending.add(future)

        future.add_done_callback(lambda f: self._finished(index, f))
        return future

    def _delete_and_commit(self, index: str) -> int:
        logger.debug("store_call_delete_by_filter", index=index, field=self._filter.field)
        deleted = self._store.bulk_delete_by_filter(index, self._filter)
        self._store.refresh(index)
        return deleted

    def _finished(self, index: str, future: Future[int]) -> None:
        with self._lock:
            self._pending.discard(future)

        # Outcome is deliberately not reported to anyone
        if future.cancelled():
            logger.debug("interim_delete_cancelled", index=index)
            return
        error = future.exception()
        if isinstance(error, StoreError):
            logger.debug("interim_delete_failed", index=index, error=error.to_dict())
        elif error is not None:
            logger.debug("interim_delete_failed", index=index, error=str(error))
        else:
            logger.debug("interim_delete_completed", index=index, deleted=future.result())

    def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for submitted deletions.

        Returns:
            True if nothing is left pending.
        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True, timeout: float | None = None) -> bool:
        """
        Stop accepting deletions, optionally draining the ones in flight.

        Returns:
            True if no deletion is still running. Queued deletions are
            cancelled when not waiting, but a running one cannot be.
        """
        with self._lock:
            self._closed = True
        if wait_for_pending:
            self.drain(timeout)
        self._executor.shutdown(wait=False, cancel_futures=not wait_for_pending)

        with self._lock:
            running = sum(1 for future in self._pending if not future.done())
        if running:
            logger.warning("interim_delete_still_running", pending=running)
        return running == 0
