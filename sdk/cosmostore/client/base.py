"""
Base protocol and types for the document client abstraction.

This module defines the DocumentClient protocol that every backend must
implement, along with the response type returned by document calls.

Invariants:
    - Every method is a coroutine and a suspension point
    - Successful document calls return a DocumentResponse
    - Failures raise DocumentClientError carrying a status code and request charge

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error classification in DocumentClientError, not in backends
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class DocumentResponse:
    """Successful single-document response.

    Attributes:
        document: Document returned by the service (None for deletes)
        request_charge: Throughput units consumed by the call
        status_code: HTTP-like status code
    """

    document: dict[str, Any] | None
    request_charge: float = 0.0
    status_code: int = 200


@runtime_checkable
class DocumentClient(Protocol):
    """Protocol for document service backends.

    Databases and collections are addressed by id. Partition key values are
    passed explicitly for calls that address a single document by id.

    Error contract:
        - Rate limiting raises DocumentClientError with status 429
        - Conflicts raise 409, missing resources raise 404
        - The request charge of the failed call is reported when known

    Example:
        >>> client = InMemoryDocumentClient()
        >>> await client.create_database("library")
        >>> await client.create_collection("library", "books", partition_key_path="/id")
        >>> response = await client.create_document("library", "books", {"id": "1"})
    """

    @abstractmethod
    async def list_databases(self) -> list[dict[str, Any]]:
        """List database resources (each has an "id")."""
        ...

    @abstractmethod
    async def create_database(self, database_id: str) -> dict[str, Any]:
        """Create a database.

        Raises:
            DocumentClientError: 409 if it already exists
        """
        ...

    @abstractmethod
    async def list_collections(self, database_id: str) -> list[dict[str, Any]]:
        """List collection resources of a database (each has an "id")."""
        ...

    @abstractmethod
    async def create_collection(
        self,
        database_id: str,
        collection_id: str,
        *,
        partition_key_path: str,
        throughput: int,
        indexing_policy: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a collection with its partition key, indexing policy and throughput.

        Raises:
            DocumentClientError: 409 if it already exists, 404 if the database is missing
        """
        ...

    @abstractmethod
    async def read_collection_throughput(
        self, database_id: str, collection_id: str
    ) -> int | None:
        """Return the collection's manually provisioned throughput.

        Returns:
            Throughput, or None when the collection is autoscale-provisioned
        """
        ...

    @abstractmethod
    async def update_collection_throughput(
        self, database_id: str, collection_id: str, throughput: int
    ) -> int:
        """Replace the collection's provisioned throughput and return the new value."""
        ...

    @abstractmethod
    async def create_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        """Create a document; 409 if the id already exists."""
        ...

    @abstractmethod
    async def replace_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        """Replace an existing document; 404 if it does not exist."""
        ...

    @abstractmethod
    async def upsert_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        """Create or replace a document."""
        ...

    @abstractmethod
    async def delete_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        """Delete a document; 404 if it does not exist."""
        ...

    @abstractmethod
    async def read_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        """Read a document; 404 if it does not exist."""
        ...

    @abstractmethod
    async def query_documents(
        self,
        database_id: str,
        collection_id: str,
        query: str,
        *,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a SQL query and return all matching documents."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the client."""
        ...
