"""
Error types for cosmostore.

This module defines all exception types raised by the store:
- CosmosStoreError: Base exception
- DocumentClientError: Classified failure reported by the document service
- ProvisioningError: Database or collection could not be ensured
- StoreNotInitializedError: Store used before initialize()
- EntityMappingError: Invalid per-type mapping
- InvalidSqlQueryError: Query cannot be rewritten for a shared collection

Invariants:
    - All errors inherit from CosmosStoreError
    - Errors include context for debugging
    - Secrets never appear in messages or details
"""

from __future__ import annotations

from typing import Any

from .response import OperationStatus


class CosmosStoreError(Exception):
    """Base exception for all cosmostore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "COSMOSTORE_ERROR"
        self.details = details or {}


class DocumentClientError(CosmosStoreError):
    """Classified failure returned by the document service.

    Raised by DocumentClient implementations when:
    - The request rate exceeds provisioned throughput (429)
    - A document with the same id already exists (409)
    - The target resource does not exist (404)
    - Any other service-side failure

    Attributes:
        status_code: HTTP-like status code
        request_charge: Throughput units consumed by the failed call
        retry_after_ms: Suggested wait reported by the service, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        request_charge: float = 0.0,
        retry_after_ms: int | None = None,
        operation: str | None = None,
    ) -> None:
        status = OperationStatus.from_status_code(status_code)
        super().__init__(
            message,
            code=status.name,
            details={
                "status_code": status_code,
                "request_charge": request_charge,
                "retry_after_ms": retry_after_ms,
                "operation": operation,
            },
        )
        self.status_code = status_code
        self.request_charge = request_charge
        self.retry_after_ms = retry_after_ms
        self.operation = operation

    @property
    def status(self) -> OperationStatus:
        return OperationStatus.from_status_code(self.status_code)


class ProvisioningError(CosmosStoreError):
    """Database or collection could not be ensured.

    Raised from CosmosStore.initialize(); the store is unusable afterwards.
    """

    def __init__(self, message: str, resource: str) -> None:
        super().__init__(
            message,
            code="PROVISIONING_ERROR",
            details={"resource": resource},
        )
        self.resource = resource


class StoreNotInitializedError(CosmosStoreError):
    """Operation attempted before the store was initialized."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Store for collection '{collection}' is not initialized. "
            "Call initialize() or use 'async with'.",
            code="NOT_INITIALIZED",
            details={"collection": collection},
        )


class EntityMappingError(CosmosStoreError):
    """Entity mapping is invalid.

    Raised when:
    - The id or partition key field does not exist on the entity type
    - A shared collection mapping also names a partition key field
    - The throughput override is below the service minimum
    """

    def __init__(self, message: str, entity_type: str) -> None:
        super().__init__(
            message,
            code="MAPPING_ERROR",
            details={"entity_type": entity_type},
        )
        self.entity_type = entity_type


class InvalidSqlQueryError(CosmosStoreError):
    """SQL query cannot be made shared-collection friendly."""

    def __init__(self, message: str, query: str) -> None:
        super().__init__(
            message,
            code="INVALID_SQL",
            details={"query": query},
        )
        self.query = query
