"""
Cosmos store: the public entry point of cosmostore.

A CosmosStore binds one entity type to one collection. It provisions the
database and collection on initialize(), runs single-entity operations
against the document client and hands multi-entity operations to the
batch engine.

Invariants:
    - No operation runs before initialize() has ensured database and collection
    - Single-entity operations return outcomes; classified failures are never raised
    - A missing document id is populated with a UUID4 before any write
    - Queries on a shared collection always filter on the entity name

How to change safely:
    - New batch operations must go through BatchExecutor.execute
    - Keep partition key resolution in EntityMapping, not here

Example:
    >>> settings = StoreSettings(database_name="library")
    >>> async with CosmosStore(InMemoryDocumentClient(), settings, BookMapping) as store:
    ...     outcome = await store.add(Book(name="Dune"))
    ...     result = await store.add_range([Book(name="Emma"), Book(name="Ulysses")])
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar

from .batch import BatchExecutor
from .client.base import DocumentClient, DocumentResponse
from .client.cosmos import AzureCosmosDocumentClient
from .config import StoreSettings
from .errors import (
    CosmosStoreError,
    DocumentClientError,
    EntityMappingError,
    ProvisioningError,
    StoreNotInitializedError,
)
from .provisioning import CollectionProvisioner, DatabaseProvisioner
from .registry import MappingRegistry, get_registry
from .response import BatchResult, OperationOutcome, OperationStatus
from .scaler import ThroughputScaler
from .schema import ENTITY_NAME_FIELD, CollectionDescriptor, EntityMapping
from .sql import ensure_shared_collection_filter, to_sql_parameters

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryParameters = list[dict[str, Any]] | Mapping[str, Any] | None


class CosmosStore(Generic[T]):
    """Repository for one entity type backed by one collection.

    Attributes:
        mapping: Entity mapping in use
        collection: Descriptor of the target collection
        settings: Store configuration
    """

    def __init__(
        self,
        client: DocumentClient,
        settings: StoreSettings,
        mapping: EntityMapping[T] | type[T],
        *,
        collection_name: str | None = None,
        registry: MappingRegistry | None = None,
        scaler: ThroughputScaler | None = None,
        database_provisioner: DatabaseProvisioner | None = None,
        collection_provisioner: CollectionProvisioner | None = None,
        owns_client: bool = False,
    ) -> None:
        """Create a store (call initialize() before use).

        Args:
            client: Document client backend
            settings: Store configuration
            mapping: EntityMapping, or an entity type registered in `registry`
            collection_name: Overrides the mapped collection name
            registry: Registry used to resolve an entity type (global by default)
            scaler: Throughput scaler (built from client and settings by default)
            database_provisioner: Database provisioner override
            collection_provisioner: Collection provisioner override
            owns_client: Close the client when the store is closed

        Raises:
            EntityMappingError: If `mapping` is a type with no registered mapping
        """
        self.mapping: EntityMapping[T] = self._resolve_mapping(mapping, registry)
        self.settings = settings
        self.collection = CollectionDescriptor.for_mapping(self.mapping, settings, collection_name)
        self._client = client
        self._owns_client = owns_client
        self._database_provisioner = database_provisioner or DatabaseProvisioner(client)
        self._collection_provisioner = collection_provisioner or CollectionProvisioner(client)
        self._executor = BatchExecutor(
            scaler or ThroughputScaler(client, settings),
            max_rate_limit_retries=settings.max_rate_limit_retries,
            rate_limit_backoff_ms=settings.rate_limit_backoff_ms,
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @staticmethod
    def _resolve_mapping(
        mapping: EntityMapping[T] | type[T], registry: MappingRegistry | None
    ) -> EntityMapping[T]:
        if isinstance(mapping, EntityMapping):
            return mapping
        resolved = (registry or get_registry()).get(mapping)
        if resolved is None:
            name = getattr(mapping, "__name__", repr(mapping))
            raise EntityMappingError(f"No mapping registered for '{name}'", entity_type=name)
        return resolved

    @classmethod
    async def create(
        cls,
        client: DocumentClient,
        settings: StoreSettings,
        mapping: EntityMapping[T] | type[T],
        **kwargs: Any,
    ) -> CosmosStore[T]:
        """Create and initialize a store."""
        store = cls(client, settings, mapping, **kwargs)
        await store.initialize()
        return store

    @classmethod
    def from_settings(
        cls,
        settings: StoreSettings,
        mapping: EntityMapping[T] | type[T],
        **kwargs: Any,
    ) -> CosmosStore[T]:
        """Create a store owning an Azure Cosmos DB client built from settings."""
        client = AzureCosmosDocumentClient.from_settings(settings)
        return cls(client, settings, mapping, owns_client=True, **kwargs)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def is_shared(self) -> bool:
        return self.collection.is_shared

    @property
    def database_name(self) -> str:
        return self.collection.database_name

    @property
    def collection_name(self) -> str:
        return self.collection.collection_name

    async def initialize(self) -> None:
        """Ensure the database and collection exist.

        Safe to call more than once.

        Raises:
            ProvisioningError: If the database or collection cannot be ensured
        """
        async with self._init_lock:
            if self._initialized:
                return
            try:
                await self._database_provisioner.ensure_database(self.database_name)
                await self._collection_provisioner.ensure_collection(self.collection)
            except DocumentClientError as e:
                raise ProvisioningError(
                    f"Failed to provision {self.collection.link}: {e.message}",
                    resource=self.collection.link,
                ) from e
            self._initialized = True
            logger.info(
                "Store initialized",
                extra={
                    "database": self.database_name,
                    "collection": self.collection_name,
                    "entity_type": self.mapping.name,
                    "shared": self.is_shared,
                },
            )

    async def close(self) -> None:
        """Close the store (and its client, if owned)."""
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> CosmosStore[T]:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError(self.collection_name)

    def _id_partition_key(self, document_id: str, partition_key: Any) -> Any:
        if partition_key is None and self.collection.partition_key_is_id:
            return document_id
        return partition_key

    async def _invoke(self, entity: T | None, call: Any) -> OperationOutcome[T]:
        """Await a client call and convert it into an outcome."""
        try:
            response: DocumentResponse = await call
        except DocumentClientError as e:
            logger.debug(
                "Document operation failed",
                extra={
                    "collection": self.collection_name,
                    "operation": e.operation,
                    "status_code": e.status_code,
                },
            )
            return OperationOutcome.failed(entity, e)
        return OperationOutcome.succeeded(entity, response)

    # Single-entity operations

    async def add(self, entity: T) -> OperationOutcome[T]:
        """Create a document for `entity`; CONFLICT if the id already exists."""
        self._ensure_initialized()
        self.mapping.ensure_document_id(entity)
        return await self._invoke(
            entity,
            self._client.create_document(
                self.database_name,
                self.collection_name,
                self.mapping.to_document(entity),
                partition_key=self.mapping.partition_key_value(entity),
            ),
        )

    async def update(self, entity: T) -> OperationOutcome[T]:
        """Replace the document of `entity`; NOT_FOUND if it does not exist.

        An entity without an id is given a new one and so ends NOT_FOUND.
        """
        self._ensure_initialized()
        document_id = self.mapping.ensure_document_id(entity)
        return await self._invoke(
            entity,
            self._client.replace_document(
                self.database_name,
                self.collection_name,
                document_id,
                self.mapping.to_document(entity),
                partition_key=self.mapping.partition_key_value(entity),
            ),
        )

    async def upsert(self, entity: T) -> OperationOutcome[T]:
        """Create or replace the document of `entity`."""
        self._ensure_initialized()
        self.mapping.ensure_document_id(entity)
        return await self._invoke(
            entity,
            self._client.upsert_document(
                self.database_name,
                self.collection_name,
                self.mapping.to_document(entity),
                partition_key=self.mapping.partition_key_value(entity),
            ),
        )

    async def remove(self, entity: T) -> OperationOutcome[T]:
        """Delete the document of `entity`; NOT_FOUND if it does not exist."""
        self._ensure_initialized()
        document_id = self.mapping.ensure_document_id(entity)
        return await self._invoke(
            entity,
            self._client.delete_document(
                self.database_name,
                self.collection_name,
                document_id,
                partition_key=self.mapping.partition_key_value(entity),
            ),
        )

    async def remove_by_id(
        self, document_id: str, partition_key: Any = None
    ) -> OperationOutcome[T]:
        """Delete a document by id.

        Args:
            document_id: Document id
            partition_key: Partition key value (the id is used when the
                collection is partitioned by id)
        """
        self._ensure_initialized()
        return await self._invoke(
            None,
            self._client.delete_document(
                self.database_name,
                self.collection_name,
                document_id,
                partition_key=self._id_partition_key(document_id, partition_key),
            ),
        )

    async def find(self, document_id: str, partition_key: Any = None) -> T | None:
        """Read an entity by id.

        Returns:
            The entity, or None if no document of this type has that id

        Raises:
            DocumentClientError: For failures other than NOT_FOUND
        """
        self._ensure_initialized()
        try:
            response = await self._client.read_document(
                self.database_name,
                self.collection_name,
                document_id,
                partition_key=self._id_partition_key(document_id, partition_key),
            )
        except DocumentClientError as e:
            if e.status is OperationStatus.NOT_FOUND:
                return None
            raise

        document = response.document or {}
        if self.is_shared and document.get(ENTITY_NAME_FIELD) != self.mapping.discriminator:
            return None
        return self.mapping.from_document(document)

    # Batch operations

    async def add_range(
        self, entities: Iterable[T], *, cancellation: asyncio.Event | None = None
    ) -> BatchResult[T]:
        """Add every entity; see BatchExecutor.execute for retry semantics."""
        self._ensure_initialized()
        return await self._executor.execute(
            self.collection, list(entities), self.add, cancellation=cancellation
        )

    async def update_range(
        self, entities: Iterable[T], *, cancellation: asyncio.Event | None = None
    ) -> BatchResult[T]:
        self._ensure_initialized()
        return await self._executor.execute(
            self.collection, list(entities), self.update, cancellation=cancellation
        )

    async def upsert_range(
        self, entities: Iterable[T], *, cancellation: asyncio.Event | None = None
    ) -> BatchResult[T]:
        self._ensure_initialized()
        return await self._executor.execute(
            self.collection, list(entities), self.upsert, cancellation=cancellation
        )

    async def remove_range(
        self, entities: Iterable[T], *, cancellation: asyncio.Event | None = None
    ) -> BatchResult[T]:
        self._ensure_initialized()
        return await self._executor.execute(
            self.collection, list(entities), self.remove, cancellation=cancellation
        )

    async def remove_where(
        self,
        sql: str,
        parameters: QueryParameters = None,
        *,
        cancellation: asyncio.Event | None = None,
    ) -> BatchResult[T]:
        """Remove every entity matched by a SQL query, as one batch."""
        entities = await self.query_multiple(sql, parameters)
        return await self.remove_range(entities, cancellation=cancellation)

    # Queries

    async def query_documents(
        self,
        sql: str,
        parameters: QueryParameters = None,
        *,
        partition_key: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a SQL query and return raw documents.

        Args:
            sql: Query text, e.g. "select * from c where c.name = @name"
            parameters: Parameter list, or a mapping/dataclass turned into one
            partition_key: Restrict the query to one partition

        Raises:
            InvalidSqlQueryError: If a shared-collection query cannot be rewritten
            DocumentClientError: If the query fails
        """
        self._ensure_initialized()
        if self.is_shared:
            sql = ensure_shared_collection_filter(sql, self.mapping.discriminator)
        if parameters is not None and not isinstance(parameters, list):
            parameters = to_sql_parameters(parameters)
        return await self._client.query_documents(
            self.database_name,
            self.collection_name,
            sql,
            parameters=parameters,
            partition_key=partition_key,
        )

    async def query_multiple(
        self,
        sql: str,
        parameters: QueryParameters = None,
        *,
        partition_key: Any = None,
    ) -> list[T]:
        """Run a SQL query and map every match to an entity."""
        documents = await self.query_documents(sql, parameters, partition_key=partition_key)
        return [self.mapping.from_document(document) for document in documents]

    async def query_single(
        self,
        sql: str,
        parameters: QueryParameters = None,
        *,
        partition_key: Any = None,
    ) -> T | None:
        """Run a SQL query expected to match at most one entity.

        Raises:
            CosmosStoreError: If more than one document matches
        """
        entities = await self.query_multiple(sql, parameters, partition_key=partition_key)
        if len(entities) > 1:
            raise CosmosStoreError(
                f"Query matched {len(entities)} documents, expected at most one",
                code="MULTIPLE_RESULTS",
                details={"query": sql},
            )
        return entities[0] if entities else None
