"""
Outcome of a persistence operation.

Persistence is best effort: storage failures are logged and carried back as
warnings on the outcome, never raised to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from anomaly_results.persistence.bulk import BatchResult


class OutcomeStatus(str, Enum):
    """Caller-visible status of a persistence operation."""

    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class WriteOutcome:
    """
    What a persistence operation did.

    Attributes:
        operation: Name of the coordinator operation.
        job_id: Job the documents belong to.
        status: DONE, SKIPPED (nothing to write) or FAILED (the primary write failed).
        documents_written: Documents the store accepted.
        warnings: Logged failures that did not stop the operation.
    """

    operation: str
    job_id: str
    status: OutcomeStatus = OutcomeStatus.DONE
    documents_written: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def persisted(self) -> bool:
        """Whether the operation wrote what it was asked to write."""
        return self.status == OutcomeStatus.DONE

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def skip(self, reason: str) -> WriteOutcome:
        """Mark the operation as having nothing to write."""
        self.status = OutcomeStatus.SKIPPED
        self.warnings.append(reason)
        return self

    def fail(self, reason: str) -> WriteOutcome:
        """Mark the primary write as failed."""
        self.status = OutcomeStatus.FAILED
        self.warnings.append(reason)
        return self

    def record_batch(self, result: BatchResult) -> None:
        """
        Fold a batch result in. Partial or whole batch failures become
        warnings; they never turn the outcome into a failure.
        """
        self.documents_written += result.succeeded
        if result.error:
            self.warnings.append(result.error)
        elif result.failure_message:
            self.warnings.append(result.failure_message)
        self.warnings.extend(result.serialization_errors)

    def absorb(self, other: WriteOutcome) -> None:
        """Merge a sub-operation's outcome into this one."""
        self.documents_written += other.documents_written
        self.warnings.extend(other.warnings)
        if other.status == OutcomeStatus.FAILED:
            self.status = OutcomeStatus.FAILED
        elif other.status == OutcomeStatus.SKIPPED and self.documents_written == 0:
            self.status = OutcomeStatus.SKIPPED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation": self.operation,
            "job_id": self.job_id,
            "status": self.status.value,
            "documents_written": self.documents_written,
            "warnings": self.warnings,
        }
