"""
Azure Cosmos DB document client.

This module implements the DocumentClient protocol on top of the
azure-cosmos async SDK (azure.cosmos.aio).

Invariants:
    - Every CosmosHttpResponseError is re-raised as DocumentClientError
    - Request charges are read from the x-ms-request-charge response header
    - Collections are always created partitioned (default "/id")

How to change safely:
    - Keep SDK types out of the public surface; callers only see dicts
    - The SDK retries throttled requests itself unless configured otherwise;
      pass retry options through client_options to surface 429s sooner
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from azure.cosmos import PartitionKey, exceptions
from azure.cosmos.aio import CosmosClient

from ..config import StoreSettings
from ..errors import DocumentClientError
from .base import DocumentResponse

logger = logging.getLogger(__name__)

REQUEST_CHARGE_HEADER = "x-ms-request-charge"
RETRY_AFTER_HEADER = "x-ms-retry-after-ms"


def _request_charge(headers: Any) -> float:
    try:
        return float((headers or {}).get(REQUEST_CHARGE_HEADER, 0))
    except (TypeError, ValueError):
        return 0.0


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise SDK HTTP errors as DocumentClientError."""
    try:
        yield
    except exceptions.CosmosHttpResponseError as e:
        headers = getattr(e, "headers", None) or {}
        retry_after = headers.get(RETRY_AFTER_HEADER)
        raise DocumentClientError(
            getattr(e, "message", None) or str(e),
            status_code=e.status_code or 500,
            request_charge=_request_charge(headers),
            retry_after_ms=int(float(retry_after)) if retry_after else None,
            operation=operation,
        ) from e


def _header_capture() -> tuple[dict[str, Any], Callable[..., None]]:
    """Return a dict and a response_hook that fills it with response headers."""
    captured: dict[str, Any] = {}

    def hook(headers: Any, *_: Any) -> None:
        captured.update(headers or {})

    return captured, hook


class AzureCosmosDocumentClient:
    """DocumentClient backed by azure.cosmos.aio.CosmosClient.

    Example:
        >>> client = AzureCosmosDocumentClient.from_settings(settings)
        >>> await client.create_document("library", "books", {"id": "1"})
        >>> await client.close()
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        auth_key: str | None = None,
        *,
        client: CosmosClient | None = None,
        **client_options: Any,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint_url: Account endpoint
            auth_key: Account key
            client: Pre-built CosmosClient (endpoint and key are then ignored)
            client_options: Extra keyword arguments for CosmosClient
        """
        if client is None:
            if not endpoint_url or not auth_key:
                raise ValueError("endpoint_url and auth_key are required without a client")
            client = CosmosClient(endpoint_url, credential=auth_key, **client_options)
        self._client = client

    @classmethod
    def from_settings(cls, settings: StoreSettings, **client_options: Any) -> AzureCosmosDocumentClient:
        auth_key = settings.auth_key.get_secret_value() if settings.auth_key else None
        return cls(settings.endpoint_url, auth_key, **client_options)

    def _container(self, database_id: str, collection_id: str) -> Any:
        return self._client.get_database_client(database_id).get_container_client(collection_id)

    async def close(self) -> None:
        await self._client.close()
        logger.debug("Cosmos client closed")

    async def list_databases(self) -> list[dict[str, Any]]:
        with _translate_errors("list_databases"):
            return [db async for db in self._client.list_databases()]

    async def create_database(self, database_id: str) -> dict[str, Any]:
        with _translate_errors("create_database"):
            await self._client.create_database(id=database_id)
        return {"id": database_id}

    async def list_collections(self, database_id: str) -> list[dict[str, Any]]:
        database = self._client.get_database_client(database_id)
        with _translate_errors("list_collections"):
            return [c async for c in database.list_containers()]

    async def create_collection(
        self,
        database_id: str,
        collection_id: str,
        *,
        partition_key_path: str,
        throughput: int,
        indexing_policy: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        database = self._client.get_database_client(database_id)
        options: dict[str, Any] = {}
        if indexing_policy is not None:
            options["indexing_policy"] = indexing_policy
        with _translate_errors("create_collection"):
            await database.create_container(
                id=collection_id,
                partition_key=PartitionKey(path=partition_key_path),
                offer_throughput=throughput,
                **options,
            )
        return {"id": collection_id, "partitionKey": {"paths": [partition_key_path]}}

    async def read_collection_throughput(
        self, database_id: str, collection_id: str
    ) -> int | None:
        container = self._container(database_id, collection_id)
        with _translate_errors("read_collection_throughput"):
            offer = await container.get_throughput()
        # autoscale offers carry no manual throughput
        if offer.offer_throughput is None:
            return None
        return int(offer.offer_throughput)

    async def update_collection_throughput(
        self, database_id: str, collection_id: str, throughput: int
    ) -> int:
        container = self._container(database_id, collection_id)
        with _translate_errors("update_collection_throughput"):
            await container.replace_throughput(throughput)
        return throughput

    async def create_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        container = self._container(database_id, collection_id)
        headers, hook = _header_capture()
        with _translate_errors("create_document"):
            body = await container.create_item(body=document, response_hook=hook)
        return DocumentResponse(document=dict(body), request_charge=_request_charge(headers))

    async def replace_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        container = self._container(database_id, collection_id)
        headers, hook = _header_capture()
        with _translate_errors("replace_document"):
            body = await container.replace_item(
                item=document_id, body=document, response_hook=hook
            )
        return DocumentResponse(document=dict(body), request_charge=_request_charge(headers))

    async def upsert_document(
        self,
        database_id: str,
        collection_id: str,
        document: dict[str, Any],
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        container = self._container(database_id, collection_id)
        headers, hook = _header_capture()
        with _translate_errors("upsert_document"):
            body = await container.upsert_item(body=document, response_hook=hook)
        return DocumentResponse(document=dict(body), request_charge=_request_charge(headers))

    async def delete_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        container = self._container(database_id, collection_id)
        headers, hook = _header_capture()
        with _translate_errors("delete_document"):
            await container.delete_item(
                item=document_id,
                partition_key=document_id if partition_key is None else partition_key,
                response_hook=hook,
            )
        return DocumentResponse(
            document=None, request_charge=_request_charge(headers), status_code=204
        )

    async def read_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        partition_key: Any = None,
    ) -> DocumentResponse:
        container = self._container(database_id, collection_id)
        headers, hook = _header_capture()
        with _translate_errors("read_document"):
            body = await container.read_item(
                item=document_id,
                partition_key=document_id if partition_key is None else partition_key,
                response_hook=hook,
            )
        return DocumentResponse(document=dict(body), request_charge=_request_charge(headers))

    async def query_documents(
        self,
        database_id: str,
        collection_id: str,
        query: str,
        *,
        parameters: list[dict[str, Any]] | None = None,
        partition_key: Any = None,
    ) -> list[dict[str, Any]]:
        container = self._container(database_id, collection_id)
        options: dict[str, Any] = {}
        if partition_key is not None:
            options["partition_key"] = partition_key
        with _translate_errors("query_documents"):
            return [
                dict(item)
                async for item in container.query_items(
                    query=query, parameters=parameters or None, **options
                )
            ]
