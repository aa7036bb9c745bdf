"""
Operation outcome and batch result types for cosmostore.

This module defines the values returned by store operations:
- OperationStatus: Classification of a single remote call
- OperationOutcome: Result of one single-entity attempt
- BatchResult: Aggregate of one logical batch call

Invariants:
    - Outcomes are immutable once produced
    - Every entity of a batch appears in exactly one of successful/failed
    - Only the latest attempt per entity decides its classification

How to change safely:
    - New statuses must be mapped in OperationStatus.from_status_code
    - Keep BatchResult frozen; the batch engine builds it once per call
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from .client.base import DocumentResponse
    from .errors import DocumentClientError

T = TypeVar("T")

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429


class OperationStatus(Enum):
    """Classification of a single remote operation."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FAILURE = "failure"

    @classmethod
    def from_status_code(cls, status_code: int) -> OperationStatus:
        """Classify an HTTP-like status code."""
        if 200 <= status_code < 300:
            return cls.SUCCESS
        if status_code == HTTP_TOO_MANY_REQUESTS:
            return cls.RATE_LIMITED
        if status_code == HTTP_CONFLICT:
            return cls.CONFLICT
        if status_code == HTTP_NOT_FOUND:
            return cls.NOT_FOUND
        return cls.FAILURE


@dataclass(frozen=True)
class OperationOutcome(Generic[T]):
    """Result of one single-entity operation attempt.

    Attributes:
        entity: The originating entity (None for id-only operations)
        status: Classified status of the attempt
        status_code: HTTP-like status code reported by the service
        request_charge: Throughput units consumed by the call
        document: Document returned by the service on success
        error: Diagnostic message on failure
    """

    entity: T | None
    status: OperationStatus
    status_code: int = 200
    request_charge: float = 0.0
    document: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        """Whether the attempt succeeded."""
        return self.status is OperationStatus.SUCCESS

    @property
    def is_rate_limited(self) -> bool:
        """Whether the service throttled the attempt."""
        return self.status is OperationStatus.RATE_LIMITED

    @classmethod
    def succeeded(cls, entity: T | None, response: DocumentResponse) -> OperationOutcome[T]:
        """Build a successful outcome from a client response."""
        return cls(
            entity=entity,
            status=OperationStatus.SUCCESS,
            status_code=response.status_code,
            request_charge=response.request_charge,
            document=response.document,
        )

    @classmethod
    def failed(cls, entity: T | None, error: DocumentClientError) -> OperationOutcome[T]:
        """Build a failed outcome from a classified client error."""
        return cls(
            entity=entity,
            status=error.status,
            status_code=error.status_code,
            request_charge=error.request_charge,
            error=error.message,
        )


@dataclass(frozen=True)
class BatchResult(Generic[T]):
    """Aggregate result of a batch operation.

    Attributes:
        successful: Outcomes of entities whose latest attempt succeeded
        failed: Outcomes of entities that ended in a failure
        attempts: Total single-entity calls issued, retries included
        rounds: Number of concurrent rounds issued
        error: Cause of abandonment or of a failed throughput restore

    Example:
        >>> result = await store.add_range(books)
        >>> if not result.is_success:
        ...     for outcome in result.failed:
        ...         print(outcome.entity, outcome.status)
    """

    successful: tuple[OperationOutcome[T], ...] = ()
    failed: tuple[OperationOutcome[T], ...] = ()
    attempts: int = 0
    rounds: int = 0
    error: Exception | None = None

    @property
    def successful_entities(self) -> list[T | None]:
        return [outcome.entity for outcome in self.successful]

    @property
    def failed_entities(self) -> list[T | None]:
        return [outcome.entity for outcome in self.failed]

    @property
    def is_success(self) -> bool:
        """True when nothing failed and the batch was not abandoned."""
        return not self.failed and self.error is None

    def __len__(self) -> int:
        return len(self.successful) + len(self.failed)
