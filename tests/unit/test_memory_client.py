"""
Unit tests for the in-memory document client.

Tests cover:
- Database and collection management
- Document operations and classified errors
- Partition key scoping
- Query filtering
- Testing helpers (failure injection, call log)
"""

import pytest

from sdk.cosmostore.client.base import DocumentClient
from sdk.cosmostore.client.memory import InMemoryDocumentClient
from sdk.cosmostore.errors import DocumentClientError
from sdk.cosmostore.response import OperationStatus


async def make_collection(client, collection="books", partition_key_path="/id"):
    """Create the library database and one collection."""
    await client.create_database("library")
    await client.create_collection(
        "library", collection, partition_key_path=partition_key_path, throughput=400
    )


class TestInMemoryDatabases:
    """Tests for database and collection management."""

    @pytest.fixture
    def client(self):
        """Create a fresh client."""
        return InMemoryDocumentClient()

    def test_implements_protocol(self, client):
        """Client satisfies the DocumentClient protocol."""
        assert isinstance(client, DocumentClient)

    @pytest.mark.asyncio
    async def test_create_and_list_database(self, client):
        """Created databases are listed."""
        await client.create_database("library")

        assert await client.list_databases() == [{"id": "library"}]

    @pytest.mark.asyncio
    async def test_duplicate_database_conflicts(self, client):
        """Creating an existing database raises 409."""
        await client.create_database("library")

        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_database("library")

        assert exc_info.value.status is OperationStatus.CONFLICT

    @pytest.mark.asyncio
    async def test_create_and_list_collection(self, client):
        """Created collections are listed with their partition key."""
        await make_collection(client, partition_key_path="/author")

        collections = await client.list_collections("library")

        assert collections == [{"id": "books", "partitionKey": {"paths": ["/author"]}}]

    @pytest.mark.asyncio
    async def test_collection_in_missing_database(self, client):
        """Collections need an existing database."""
        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_collection("nope", "books", partition_key_path="/id", throughput=400)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_throughput_read_and_update(self, client):
        """Throughput can be read and replaced."""
        await make_collection(client)

        assert await client.read_collection_throughput("library", "books") == 400
        assert await client.update_collection_throughput("library", "books", 1000) == 1000
        assert client.get_throughput("library", "books") == 1000

    @pytest.mark.asyncio
    async def test_close(self, client):
        """Close marks the client closed."""
        await client.close()

        assert client.is_closed


class TestInMemoryDocuments:
    """Tests for document operations."""

    @pytest.fixture
    def client(self):
        """Create a fresh client with a fixed request charge."""
        return InMemoryDocumentClient(request_charge=6.0)

    @pytest.mark.asyncio
    async def test_create_and_read(self, client):
        """Created document can be read back with its charge."""
        await make_collection(client)

        response = await client.create_document("library", "books", {"id": "b1", "name": "Dune"})
        read = await client.read_document("library", "books", "b1")

        assert response.request_charge == 6.0
        assert read.document == {"id": "b1", "name": "Dune"}

    @pytest.mark.asyncio
    async def test_create_duplicate_conflicts(self, client):
        """Creating an existing id raises 409."""
        await make_collection(client)
        await client.create_document("library", "books", {"id": "b1"})

        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_document("library", "books", {"id": "b1"})

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_create_without_id_rejected(self, client):
        """Documents need an id."""
        await make_collection(client)

        with pytest.raises(DocumentClientError) as exc_info:
            await client.create_document("library", "books", {"name": "Dune"})

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_replace_missing_not_found(self, client):
        """Replacing a missing document raises 404."""
        await make_collection(client)

        with pytest.raises(DocumentClientError) as exc_info:
            await client.replace_document("library", "books", "b1", {"id": "b1"})

        assert exc_info.value.status is OperationStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_upsert_creates_then_replaces(self, client):
        """Upsert creates and then replaces."""
        await make_collection(client)

        await client.upsert_document("library", "books", {"id": "b1", "name": "Dune"})
        await client.upsert_document("library", "books", {"id": "b1", "name": "Emma"})

        assert client.get_documents("library", "books") == [{"id": "b1", "name": "Emma"}]

    @pytest.mark.asyncio
    async def test_delete(self, client):
        """Deleted documents are gone; deleting again raises 404."""
        await make_collection(client)
        await client.create_document("library", "books", {"id": "b1"})

        response = await client.delete_document("library", "books", "b1")

        assert response.status_code == 204
        with pytest.raises(DocumentClientError) as exc_info:
            await client.delete_document("library", "books", "b1")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_partition_scoped_ids(self, client):
        """The same id may exist once per partition."""
        await make_collection(client, partition_key_path="/author")

        await client.create_document("library", "books", {"id": "b1", "author": "herbert"})
        await client.create_document("library", "books", {"id": "b1", "author": "austen"})

        read = await client.read_document("library", "books", "b1", partition_key="austen")
        assert read.document["author"] == "austen"
        with pytest.raises(DocumentClientError):
            await client.read_document("library", "books", "b1", partition_key="tolkien")

    @pytest.mark.asyncio
    async def test_stored_documents_are_copies(self, client):
        """Mutating the caller's dict does not change the stored document."""
        await make_collection(client)
        document = {"id": "b1", "name": "Dune"}

        await client.create_document("library", "books", document)
        document["name"] = "changed"

        read = await client.read_document("library", "books", "b1")
        assert read.document["name"] == "Dune"


class TestInMemoryQueries:
    """Tests for query filtering."""

    @pytest.fixture
    def client(self):
        """Create a fresh client."""
        return InMemoryDocumentClient()

    async def seed(self, client):
        await make_collection(client)
        for document in (
            {"id": "b1", "name": "Dune", "year": 1965, "cosmosEntityName": "book"},
            {"id": "b2", "name": "Emma", "year": 1815, "cosmosEntityName": "book"},
            {"id": "a1", "name": "Dune", "cosmosEntityName": "author"},
        ):
            await client.create_document("library", "books", document)

    @pytest.mark.asyncio
    async def test_select_all(self, client):
        """SELECT * without WHERE returns everything."""
        await self.seed(client)

        results = await client.query_documents("library", "books", "select * from c")

        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_literal_filter(self, client):
        """String and number literals filter documents."""
        await self.seed(client)

        by_name = await client.query_documents(
            "library", "books", "select * from c where c.name = 'Dune'"
        )
        by_year = await client.query_documents(
            "library", "books", "select * from c where c.year = 1815"
        )

        assert {d["id"] for d in by_name} == {"b1", "a1"}
        assert [d["id"] for d in by_year] == ["b2"]

    @pytest.mark.asyncio
    async def test_parameter_filter_with_parentheses(self, client):
        """AND-ed, parenthesized conditions with parameters are supported."""
        await self.seed(client)

        results = await client.query_documents(
            "library",
            "books",
            "select * from c where c.cosmosEntityName = 'book' and (c.name = @name)",
            parameters=[{"name": "@name", "value": "Dune"}],
        )

        assert [d["id"] for d in results] == ["b1"]

    @pytest.mark.asyncio
    async def test_unsupported_query_rejected(self, client):
        """Queries outside the supported subset raise 400."""
        await self.seed(client)

        with pytest.raises(DocumentClientError) as exc_info:
            await client.query_documents(
                "library", "books", "select * from c where c.year > 1900"
            )

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_parameter_rejected(self, client):
        """Referencing an unknown parameter raises 400."""
        await self.seed(client)

        with pytest.raises(DocumentClientError):
            await client.query_documents(
                "library", "books", "select * from c where c.name = @name"
            )


class TestInMemoryTestingHelpers:
    """Tests for failure injection and the call log."""

    @pytest.fixture
    def client(self):
        """Create a fresh client."""
        return InMemoryDocumentClient()

    @pytest.mark.asyncio
    async def test_inject_failure_for_document(self, client):
        """Injected failures fire for the given document, then stop."""
        await make_collection(client)
        client.inject_failure("b1", status_code=429, times=2)

        for _ in range(2):
            with pytest.raises(DocumentClientError) as exc_info:
                await client.create_document("library", "books", {"id": "b1"})
            assert exc_info.value.status is OperationStatus.RATE_LIMITED

        await client.create_document("library", "books", {"id": "b1"})
        assert client.count_calls("create_document", "b1") == 3

    @pytest.mark.asyncio
    async def test_injected_failure_only_hits_target(self, client):
        """Other documents are unaffected."""
        await make_collection(client)
        client.inject_failure("b1", status_code=429)

        await client.create_document("library", "books", {"id": "b2"})

        assert client.count_calls("create_document") == 1

    @pytest.mark.asyncio
    async def test_inject_operation_failure(self, client):
        """Operation failures fire for the named method."""
        await make_collection(client)
        client.inject_operation_failure("update_collection_throughput", status_code=503)

        with pytest.raises(DocumentClientError) as exc_info:
            await client.update_collection_throughput("library", "books", 1000)

        assert exc_info.value.status is OperationStatus.FAILURE
        assert client.get_throughput("library", "books") == 400

    @pytest.mark.asyncio
    async def test_calls_are_recorded(self, client):
        """Every call lands in the call log."""
        await make_collection(client)

        assert client.calls == [("create_database", "library"), ("create_collection", "books")]
