"""
Unit tests for the Azure Cosmos DB document client.

The azure-cosmos SDK proxies are replaced with mocks; no account is needed.

Tests cover:
- Construction from settings
- Request charge capture from response headers
- Error translation to DocumentClientError
- Collection and throughput management calls
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.cosmos import exceptions

from sdk.cosmostore.client.cosmos import AzureCosmosDocumentClient
from sdk.cosmostore.config import StoreSettings
from sdk.cosmostore.errors import DocumentClientError
from sdk.cosmostore.response import OperationStatus


async def async_items(items):
    for item in items:
        yield item


def respond_with(body, request_charge):
    """Side effect calling the response hook like the SDK does."""

    def respond(**kwargs):
        kwargs["response_hook"]({"x-ms-request-charge": str(request_charge)}, body)
        return body

    return respond


def http_error(status_code, message="Request failed", headers=None):
    error = exceptions.CosmosHttpResponseError(status_code=status_code, message=message)
    error.headers = headers or {}
    return error


class TestConstruction:
    """Tests for building the client."""

    def test_requires_credentials_without_client(self):
        """Endpoint and key are required when no SDK client is given."""
        with pytest.raises(ValueError):
            AzureCosmosDocumentClient("https://localhost:8081")

    def test_from_settings(self):
        """Settings provide endpoint and the unwrapped key."""
        settings = StoreSettings(
            database_name="library",
            endpoint_url="https://account.documents.azure.com:443/",
            auth_key="secret",
        )

        with patch("sdk.cosmostore.client.cosmos.CosmosClient") as cosmos_client:
            AzureCosmosDocumentClient.from_settings(settings)

        cosmos_client.assert_called_once_with(
            "https://account.documents.azure.com:443/", credential="secret"
        )


class TestDocumentOperations:
    """Tests for document calls."""

    @pytest.fixture
    def container(self):
        """Mocked container proxy."""
        return MagicMock()

    @pytest.fixture
    def sdk_client(self, container):
        """Mocked CosmosClient routing to the container."""
        sdk_client = MagicMock()
        sdk_client.close = AsyncMock()
        sdk_client.get_database_client.return_value.get_container_client.return_value = container
        return sdk_client

    @pytest.fixture
    def client(self, sdk_client):
        return AzureCosmosDocumentClient(client=sdk_client)

    @pytest.mark.asyncio
    async def test_create_reports_request_charge(self, client, sdk_client, container):
        """Request charge comes from the response headers."""
        container.create_item = AsyncMock(side_effect=respond_with({"id": "b1"}, 6.19))

        response = await client.create_document("library", "books", {"id": "b1"})

        assert response.document == {"id": "b1"}
        assert response.request_charge == 6.19
        sdk_client.get_database_client.assert_called_with("library")
        sdk_client.get_database_client.return_value.get_container_client.assert_called_with(
            "books"
        )

    @pytest.mark.asyncio
    async def test_rate_limit_translated(self, client, container):
        """429 responses become RATE_LIMITED errors with a retry hint."""
        container.create_item = AsyncMock(
            side_effect=http_error(
                429,
                "Request rate is large",
                {"x-ms-request-charge": "0.5", "x-ms-retry-after-ms": "120"},
            )
        )

        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_document("library", "books", {"id": "b1"})

        error = exc_info.value
        assert error.status is OperationStatus.RATE_LIMITED
        assert error.request_charge == 0.5
        assert error.retry_after_ms == 120
        assert error.operation == "create_document"
        assert "Request rate is large" in error.message

    @pytest.mark.asyncio
    async def test_read_not_found(self, client, container):
        """404 responses become NOT_FOUND errors."""
        container.read_item = AsyncMock(side_effect=http_error(404, "Not found"))

        with pytest.raises(DocumentClientError) as exc_info:
            await client.read_document("library", "books", "missing")

        assert exc_info.value.status is OperationStatus.NOT_FOUND
        assert exc_info.value.retry_after_ms is None

    @pytest.mark.asyncio
    async def test_read_defaults_partition_key_to_id(self, client, container):
        """Without a partition key the id is used."""
        container.read_item = AsyncMock(side_effect=respond_with({"id": "b1"}, 1.0))

        await client.read_document("library", "books", "b1")

        assert container.read_item.await_args.kwargs["partition_key"] == "b1"

    @pytest.mark.asyncio
    async def test_replace_and_upsert(self, client, container):
        """Replace targets the id; upsert sends the body."""
        container.replace_item = AsyncMock(side_effect=respond_with({"id": "b1"}, 2.0))
        container.upsert_item = AsyncMock(side_effect=respond_with({"id": "b2"}, 3.0))

        replaced = await client.replace_document("library", "books", "b1", {"id": "b1"})
        upserted = await client.upsert_document("library", "books", {"id": "b2"})

        assert container.replace_item.await_args.kwargs["item"] == "b1"
        assert replaced.request_charge == 2.0
        assert upserted.document == {"id": "b2"}

    @pytest.mark.asyncio
    async def test_delete_uses_partition_key(self, client, container):
        """Delete passes the given partition key and reports 204."""
        container.delete_item = AsyncMock(side_effect=respond_with(None, 4.0))

        response = await client.delete_document(
            "library", "books", "b1", partition_key="herbert"
        )

        kwargs = container.delete_item.await_args.kwargs
        assert kwargs["item"] == "b1"
        assert kwargs["partition_key"] == "herbert"
        assert response.status_code == 204
        assert response.request_charge == 4.0

    @pytest.mark.asyncio
    async def test_query_items(self, client, container):
        """Queries are cross-partition unless a partition key is given."""
        container.query_items = MagicMock(return_value=async_items([{"id": "b1"}]))
        parameters = [{"name": "@name", "value": "Dune"}]

        documents = await client.query_documents(
            "library", "books", "select * from c where c.name = @name", parameters=parameters
        )

        assert documents == [{"id": "b1"}]
        container.query_items.assert_called_once_with(
            query="select * from c where c.name = @name", parameters=parameters
        )

    @pytest.mark.asyncio
    async def test_query_with_partition_key(self, client, container):
        """A partition key restricts the query."""
        container.query_items = MagicMock(return_value=async_items([]))

        await client.query_documents("library", "books", "select * from c", partition_key="p1")

        assert container.query_items.call_args.kwargs["partition_key"] == "p1"
        assert container.query_items.call_args.kwargs["parameters"] is None

    @pytest.mark.asyncio
    async def test_close(self, client, sdk_client):
        """Close closes the SDK client."""
        await client.close()

        sdk_client.close.assert_awaited_once()


class TestResourceManagement:
    """Tests for database, collection and throughput calls."""

    @pytest.fixture
    def sdk_client(self):
        """Mocked CosmosClient."""
        return MagicMock()

    @pytest.fixture
    def client(self, sdk_client):
        return AzureCosmosDocumentClient(client=sdk_client)

    @pytest.mark.asyncio
    async def test_list_and_create_database(self, client, sdk_client):
        """Databases are listed and created by id."""
        sdk_client.list_databases = MagicMock(return_value=async_items([{"id": "library"}]))
        sdk_client.create_database = AsyncMock()

        assert await client.list_databases() == [{"id": "library"}]
        assert await client.create_database("archive") == {"id": "archive"}
        sdk_client.create_database.assert_awaited_once_with(id="archive")

    @pytest.mark.asyncio
    async def test_create_database_conflict(self, client, sdk_client):
        """An existing database surfaces as CONFLICT."""
        sdk_client.create_database = AsyncMock(side_effect=http_error(409, "Conflict"))

        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_database("library")

        assert exc_info.value.status is OperationStatus.CONFLICT

    @pytest.mark.asyncio
    async def test_create_collection(self, client, sdk_client):
        """Collections are created partitioned, with throughput and indexing policy."""
        database = sdk_client.get_database_client.return_value
        database.create_container = AsyncMock()
        policy = {"indexingMode": "consistent"}

        with patch("sdk.cosmostore.client.cosmos.PartitionKey") as partition_key:
            await client.create_collection(
                "library",
                "books",
                partition_key_path="/author",
                throughput=800,
                indexing_policy=policy,
            )

        partition_key.assert_called_once_with(path="/author")
        kwargs = database.create_container.await_args.kwargs
        assert kwargs["id"] == "books"
        assert kwargs["partition_key"] is partition_key.return_value
        assert kwargs["offer_throughput"] == 800
        assert kwargs["indexing_policy"] == policy

    @pytest.mark.asyncio
    async def test_list_collections_missing_database(self, client, sdk_client):
        """Listing in a missing database surfaces NOT_FOUND."""

        async def missing():
            raise http_error(404, "Database not found")
            yield

        database = sdk_client.get_database_client.return_value
        database.list_containers = MagicMock(return_value=missing())

        with pytest.raises(DocumentClientError) as exc_info:
            await client.list_collections("library")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_throughput(self, client, sdk_client):
        """Throughput is read from and written to the container offer."""
        container = sdk_client.get_database_client.return_value.get_container_client.return_value
        container.get_throughput = AsyncMock(return_value=MagicMock(offer_throughput=400))
        container.replace_throughput = AsyncMock()

        assert await client.read_collection_throughput("library", "books") == 400
        assert await client.update_collection_throughput("library", "books", 1000) == 1000
        container.replace_throughput.assert_awaited_once_with(1000)

    @pytest.mark.asyncio
    async def test_autoscale_offer_has_no_manual_throughput(self, client, sdk_client):
        """Autoscale offers report no manual throughput."""
        container = sdk_client.get_database_client.return_value.get_container_client.return_value
        container.get_throughput = AsyncMock(return_value=MagicMock(offer_throughput=None))

        assert await client.read_collection_throughput("library", "books") is None
