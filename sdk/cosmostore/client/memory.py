"""
In-memory document client implementation for testing.

This module provides a simple in-memory DocumentClient for:
- Unit tests
- Integration tests
- Local development without a database account

Invariants:
    - All data is lost on process exit
    - Raises the same classified errors as production backends
    - Safe to use from multiple coroutines

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the DocumentClient protocol
    - The query support is intentionally small: SELECT * with AND-ed equality filters
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any

from ..errors import DocumentClientError
from .base import DocumentResponse

logger = logging.getLogger(__name__)

_QUERY_RE = re.compile(
    r"^\s*select\s+\*\s+from\s+\w+(?:\s+(?:as\s+)?(?!where\b)(\w+))?(?:\s+where\s+(.+?))?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_CONDITION_RE = re.compile(r"^(\w+)\.(\w+)\s*=\s*(.+)$", re.DOTALL)
_AND_RE = re.compile(r"\s+and\s+", re.IGNORECASE)


@dataclass
class InMemoryCollection:
    """In-memory collection storage."""

    partition_key_path: str
    throughput: int
    indexing_policy: dict[str, Any] | None = None
    documents: dict[tuple[Any, str], dict[str, Any]] = field(default_factory=dict)


class InMemoryDocumentClient:
    """In-memory implementation of DocumentClient for testing.

    Documents are stored per (partition key, id), mirroring the uniqueness
    scope of the real service. Every call is recorded in `calls`.

    Attributes:
        request_charge: Charge reported for every successful document call
        calls: Log of (operation, target) tuples in call order

    Example:
        >>> client = InMemoryDocumentClient()
        >>> client.inject_failure("book-1", status_code=429, times=2)
        >>> # the next two calls touching "book-1" are throttled
    """

    def __init__(self, request_charge: float = 5.0) -> None:
        """Initialize in-memory client.

        Args:
            request_charge: Charge reported per successful document call
        """
        self.request_charge = request_charge
        self.calls: list[tuple[str, str | None]] = []
        self._databases: dict[str, dict[str, InMemoryCollection]] = {}
        self._document_failures: dict[str, deque[int]] = defaultdict(deque)
        self._operation_failures: dict[str, deque[int]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Mark the client closed (data is kept)."""
        self._closed = True
        logger.debug("InMemoryDocumentClient closed")

    # Databases and collections

    async def list_databases(self) -> list[dict[str, Any]]:
        self._record("list_databases", None)
        return [{"id": name} for name in self._databases]

    async def create_database(self, database_id: str) -> dict[str, Any]:
        self._record("create_database", database_id)
        async with self._lock:
            if database_id in self._databases:
                raise DocumentClientError(
                    f"Database '{database_id}' already exists", status_code=409
                )
            self._databases[database_id] = {}
        return {"id": database_id}

    async def list_collections(self, database_id: str) -> list[dict[str, Any]]:
        self._record("list_collections", database_id)
        database = self._database(database_id)
        return [
            {"id": name, "partitionKey": {"paths": [coll.partition_key_path]}}
            for name, coll in database.items()
        ]

    async def create_collection(
        self,
        database_id: str,
        collection_id: str,
        *,
        partition_key_path: str,
        throughput: int,
        indexing_policy: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._record("create_collection", collection_id)
        async with self._lock:
            database = self._database(database_id)
            if collection_id in database:
                raise DocumentClientError(
                    f"Collection '{collection_id}' already exists", status_code=409
                )
            database[collection_id] = InMemoryCollection(
                partition_key_path=partition_key_path,
                throughput=throughput,
                indexing_policy=indexing_policy,
            )
        return {"id": collection_id, "partitionKey": {"paths": [partition_key_path]}}

    async def read_collection_throughput(self, database_id: str, collection_id: str) -> int:
        self._record("read_collection_throughput", collection_id)
        return self._collection(database_id, collection_id).throughput

    async def update_collection_throughput(
        self, database_id: str, collection_id: str, throughput: int
    ) -> int:
        self._record("update_collection_throughput", collection_id)
        collection = self._collection(database_id, collection_id)
        collection.throughput = throughput
        logger.debug(
            "Collection throughput replaced",
            extra={"collection": collection_id, "throughput": throughput},
        )
        return throughput

    # Documents

    async def create_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        document_id = self._document_id(document)
        self._record("create_document", document_id)
        collection = self._collection(database_id, collection_id)
        key = (self._partition_key(collection, document, partition_key), document_id)
        async with self._lock:
            if key in collection.documents:
                raise DocumentClientError(
                    f"Document '{document_id}' already exists",
                    status_code=409,
                    operation="create_document",
                )
            collection.documents[key] = copy.deepcopy(document)
        return self._response(document)

    async def replace_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        self._record("replace_document", document_id)
        collection = self._collection(database_id, collection_id)
        key = (self._partition_key(collection, document, partition_key), document_id)
        async with self._lock:
            if key not in collection.documents:
                raise DocumentClientError(
                    f"Document '{document_id}' not found",
                    status_code=404,
                    operation="replace_document",
                )
            collection.documents[key] = copy.deepcopy(document)
        return self._response(document)

    async def upsert_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        document_id = self._document_id(document)
        self._record("upsert_document", document_id)
        collection = self._collection(database_id, collection_id)
        key = (self._partition_key(collection, document, partition_key), document_id)
        async with self._lock:
            collection.documents[key] = copy.deepcopy(document)
        return self._response(document)

    async def delete_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        self._record("delete_document", document_id)
        collection = self._collection(database_id, collection_id)
        async with self._lock:
            key = self._find_key(collection, document_id, partition_key)
            if key is None:
                raise DocumentClientError(
                    f"Document '{document_id}' not found",
                    status_code=404,
                    operation="delete_document",
                )
            del collection.documents[key]
        return DocumentResponse(document=None, request_charge=self.request_charge, status_code=204)

    async def read_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        self._record("read_document", document_id)
        collection = self._collection(database_id, collection_id)
        key = self._find_key(collection, document_id, partition_key)
        if key is None:
            raise DocumentClientError(
                f"Document '{document_id}' not found",
                status_code=404,
                operation="read_document",
            )
        return self._response(collection.documents[key])

    async def query_documents(
        self,
        database_id: str,
        collection_id: str,
        query: str,
        *,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: Any = None,
    ) -> list[dict[str, Any]]:
        self._record("query_documents", collection_id)
        collection = self._collection(database_id, collection_id)
        conditions = self._parse_query(query, parameters or [])
        results = []
        for (pk, _), document in collection.documents.items():
            if partition_key is not None and pk != partition_key:
                continue
            if all(document.get(name) == value for name, value in conditions):
                results.append(copy.deepcopy(document))
        return results

    # Internals

    def _record(self, operation: str, target: str | None) -> None:
        """Log the call and raise any failure injected for it."""
        self.calls.append((operation, target))
        codes = self._operation_failures.get(operation)
        if not codes and target is not None:
            codes = self._document_failures.get(target)
        if codes:
            status_code = codes.popleft()
            raise DocumentClientError(
                f"Injected failure for {operation}({target})",
                status_code=status_code,
                operation=operation,
            )

    def _database(self, database_id: str) -> dict[str, InMemoryCollection]:
        if database_id not in self._databases:
            raise DocumentClientError(f"Database '{database_id}' not found", status_code=404)
        return self._databases[database_id]

    def _collection(self, database_id: str, collection_id: str) -> InMemoryCollection:
        database = self._database(database_id)
        if collection_id not in database:
            raise DocumentClientError(
                f"Collection '{collection_id}' not found", status_code=404
            )
        return database[collection_id]

    @staticmethod
    def _document_id(document: dict[str, Any]) -> str:
        document_id = document.get("id")
        if not document_id:
            raise DocumentClientError("Document has no 'id'", status_code=400)
        return str(document_id)

    @staticmethod
    def _partition_key(
        collection: InMemoryCollection, document: dict[str, Any], partition_key: Any
    ) -> Any:
        if partition_key is not None:
            return partition_key
        return document.get(collection.partition_key_path.lstrip("/"))

    @staticmethod
    def _find_key(
        collection: InMemoryCollection, document_id: str, partition_key: Any
    ) -> tuple[Any, str] | None:
        if partition_key is None and collection.partition_key_path == "/id":
            partition_key = document_id
        for key in collection.documents:
            if key[1] == document_id and (partition_key is None or key[0] == partition_key):
                return key
        return None

    def _response(self, document: dict[str, Any]) -> DocumentResponse:
        return DocumentResponse(
            document=copy.deepcopy(document), request_charge=self.request_charge
        )

    @staticmethod
    def _parse_query(query: str, parameters: list[dict[str, Any]]) -> list[tuple[str, Any]]:
        """Parse `SELECT * FROM c [WHERE c.a = x AND ...]` into (field, value) pairs."""
        match = _QUERY_RE.match(query)
        if match is None:
            raise DocumentClientError(f"Unsupported query: {query}", status_code=400)

        where = match.group(2)
        if not where:
            return []

        values = {p["name"]: p["value"] for p in parameters}
        conditions = []
        for part in _AND_RE.split(where.strip()):
            condition = _CONDITION_RE.match(part.strip().strip("()").strip())
            if condition is None:
                raise DocumentClientError(f"Unsupported condition: {part}", status_code=400)
            _, name, raw = condition.groups()
            conditions.append((name, _literal(raw.strip(), values)))
        return conditions

    # Testing helpers

    def inject_failure(self, document_id: str, status_code: int = 429, times: int = 1) -> None:
        """Fail the next `times` calls touching `document_id` with `status_code`."""
        self._document_failures[document_id].extend([status_code] * times)

    def inject_operation_failure(
        self, operation: str, status_code: int = 500, times: int = 1
    ) -> None:
        """Fail the next `times` calls of `operation` (a method name)."""
        self._operation_failures[operation].extend([status_code] * times)

    def count_calls(self, operation: str, target: str | None = None) -> int:
        """Count recorded calls of `operation`, optionally for one target."""
        return sum(
            1
            for op, tgt in self.calls
            if op == operation and (target is None or tgt == target)
        )

    def get_documents(self, database_id: str, collection_id: str) -> list[dict[str, Any]]:
        """Return copies of every stored document in a collection."""
        collection = self._collection(database_id, collection_id)
        return [copy.deepcopy(doc) for doc in collection.documents.values()]

    def get_throughput(self, database_id: str, collection_id: str) -> int:
        return self._collection(database_id, collection_id).throughput


def _literal(raw: str, parameters: dict[str, Any]) -> Any:
    """Evaluate a query literal or @parameter reference."""
    if raw.startswith("@"):
        if raw not in parameters:
            raise DocumentClientError(f"Missing query parameter {raw}", status_code=400)
        return parameters[raw]
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"":
        return raw[1:-1]
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        raise DocumentClientError(f"Unsupported literal: {raw}", status_code=400) from None
