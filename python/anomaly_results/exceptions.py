"""
Exception hierarchy for the results persister.

- ResultsError: Base exception for all persister errors
- ConfigurationError: Configuration and validation issues
- SerializationError: A result object could not be turned into a document
- StoreError: The document store call itself failed or timed out

Partial batch failures are not exceptions: the store reports them per item
and the batch writer logs them once per batch.

Each exception includes:
- error_code: Machine-readable error identifier
- context: Additional structured data for debugging
- is_retryable: Whether the operation can be retried
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes for categorization and monitoring."""

    # Configuration errors (1xxx)
    CONFIG_INVALID = "RESULTS_1001"
    CONFIG_MISSING = "RESULTS_1002"
    CONFIG_UNKNOWN_BACKEND = "RESULTS_1003"

    # Serialization errors (2xxx)
    SERIALIZE_FAILED = "RESULTS_2001"

    # Store errors (4xxx)
    STORE_WRITE_FAILED = "RESULTS_4001"
    STORE_BULK_FAILED = "RESULTS_4002"
    STORE_REFRESH_FAILED = "RESULTS_4003"
    STORE_DELETE_FAILED = "RESULTS_4004"
    STORE_CONNECTION_FAILED = "RESULTS_4005"

    # General errors (9xxx)
    UNKNOWN = "RESULTS_9999"


@dataclass
class ResultsError(Exception):
    """
    Base exception for all results persister errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional structured data for debugging
        is_retryable: Whether the operation can be safely retried
        cause: Original exception that caused this error
    """

    message: str
    error_code: ErrorCode = ErrorCode.UNKNOWN
    context: dict[str, Any] = field(default_factory=dict)
    is_retryable: bool = False
    cause: Exception | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f" ({context_str})")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"context={self.context!r}, "
            f"is_retryable={self.is_retryable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "context": self.context,
            "is_retryable": self.is_retryable,
            "cause": str(self.cause) if self.cause else None,
        }


@dataclass
class ConfigurationError(ResultsError):
    """Raised when configuration is invalid or missing."""

    error_code: ErrorCode = ErrorCode.CONFIG_INVALID

    @classmethod
    def missing_file(cls, path: str) -> ConfigurationError:
        """Create error for missing configuration file."""
        return cls(
            message=f"Configuration file not found: {path}",
            error_code=ErrorCode.CONFIG_MISSING,
            context={"path": path},
        )

    @classmethod
    def unknown_backend(cls, backend: str) -> ConfigurationError:
        """Create error for an unsupported store backend."""
        return cls(
            message=f"Unknown document store backend: {backend}",
            error_code=ErrorCode.CONFIG_UNKNOWN_BACKEND,
            context={"backend": backend},
        )


@dataclass
class SerializationError(ResultsError):
    """Raised when a result object cannot be converted to a document body."""

    error_code: ErrorCode = ErrorCode.SERIALIZE_FAILED

    @classmethod
    def failed(cls, kind: str, reason: str, cause: Exception | None = None) -> SerializationError:
        """Create error for a failed document conversion."""
        return cls(
            message=f"Failed to serialize {kind}: {reason}",
            error_code=ErrorCode.SERIALIZE_FAILED,
            context={"kind": kind, "reason": reason},
            cause=cause,
        )


@dataclass
class StoreError(ResultsError):
    """Raised when a document store call fails."""

    error_code: ErrorCode = ErrorCode.STORE_WRITE_FAILED
    is_retryable: bool = True

    @classmethod
    def write_failed(cls, index: str, kind: str, reason: str, cause: Exception | None = None) -> StoreError:
        """Create error for a failed single-document write."""
        return cls(
            message=f"Failed to write {kind} to {index}: {reason}",
            error_code=ErrorCode.STORE_WRITE_FAILED,
            context={"index": index, "kind": kind, "reason": reason},
            cause=cause,
        )

    @classmethod
    def bulk_failed(cls, index: str, actions: int, reason: str, cause: Exception | None = None) -> StoreError:
        """Create error for a bulk request that failed as a whole."""
        return cls(
            message=f"Bulk request against {index} failed: {reason}",
            error_code=ErrorCode.STORE_BULK_FAILED,
            context={"index": index, "actions": actions, "reason": reason},
            cause=cause,
        )

    @classmethod
    def refresh_failed(cls, index: str, reason: str, cause: Exception | None = None) -> StoreError:
        """Create error for a failed refresh."""
        return cls(
            message=f"Failed to refresh {index}: {reason}",
            error_code=ErrorCode.STORE_REFRESH_FAILED,
            context={"index": index, "reason": reason},
            cause=cause,
        )

    @classmethod
    def delete_failed(cls, index: str, reason: str, cause: Exception | None = None) -> StoreError:
        """Create error for a failed delete-by-filter."""
        return cls(
            message=f"Failed to delete from {index}: {reason}",
            error_code=ErrorCode.STORE_DELETE_FAILED,
            context={"index": index, "reason": reason},
            cause=cause,
        )

    @classmethod
    def connection_failed(cls, hosts: list[str], reason: str) -> StoreError:
        """Create error for connection failure."""
        return cls(
            message=f"Failed to connect to document store: {reason}",
            error_code=ErrorCode.STORE_CONNECTION_FAILED,
            context={"hosts": ",".join(hosts), "reason": reason},
        )
