"""
cosmostore - Object mapping and repository layer for Azure Cosmos DB.

This package provides a typed store per entity type:
- Entity mappings (EntityMapping) declared once per type
- Mapping registry for type lookup
- CosmosStore for single-entity operations, batches and SQL queries
- Automatic database/collection provisioning
- Throughput upscaling around large batches, with rate-limit retry

Example:
    >>> from sdk.cosmostore import CosmosStore, EntityMapping, InMemoryDocumentClient, StoreSettings
    >>>
    >>> @dataclass
    ... class Book:
    ...     name: str
    ...     id: str | None = None
    >>>
    >>> settings = StoreSettings(database_name="library")
    >>> async with CosmosStore(InMemoryDocumentClient(), settings, EntityMapping(Book)) as store:
    ...     result = await store.add_range([Book("Dune"), Book("Emma")])
    ...     assert result.is_success

Invariants:
    - Every batch entity ends in exactly one of successful/failed
    - Throughput raised for a batch is restored to its recorded original
    - Rate-limited operations are retried; other failures are reported

Version: 1.0.0
"""

__version__ = "1.0.0"

from .batch import BatchExecutor
from .client import (
    AzureCosmosDocumentClient,
    DocumentClient,
    DocumentResponse,
    InMemoryDocumentClient,
)
from .config import StoreSettings
from .errors import (
    CosmosStoreError,
    DocumentClientError,
    EntityMappingError,
    InvalidSqlQueryError,
    ProvisioningError,
    StoreNotInitializedError,
)
from .provisioning import CollectionProvisioner, DatabaseProvisioner
from .registry import (
    DuplicateRegistrationError,
    MappingRegistry,
    get_registry,
    register_entity,
    reset_registry,
)
from .response import BatchResult, OperationOutcome, OperationStatus
from .scaler import ThroughputLease, ThroughputScaler
from .schema import ENTITY_NAME_FIELD, CollectionDescriptor, EntityMapping
from .sql import ensure_shared_collection_filter, to_sql_parameters
from .store import CosmosStore

__all__ = [
    # Version
    "__version__",
    # Store
    "CosmosStore",
    "StoreSettings",
    # Mapping
    "EntityMapping",
    "CollectionDescriptor",
    "ENTITY_NAME_FIELD",
    # Registry
    "MappingRegistry",
    "get_registry",
    "register_entity",
    "reset_registry",
    # Results
    "OperationStatus",
    "OperationOutcome",
    "BatchResult",
    # Engine
    "BatchExecutor",
    "ThroughputScaler",
    "ThroughputLease",
    "DatabaseProvisioner",
    "CollectionProvisioner",
    # Clients
    "DocumentClient",
    "DocumentResponse",
    "InMemoryDocumentClient",
    "AzureCosmosDocumentClient",
    # SQL
    "ensure_shared_collection_filter",
    "to_sql_parameters",
    # Errors
    "CosmosStoreError",
    "DocumentClientError",
    "ProvisioningError",
    "StoreNotInitializedError",
    "EntityMappingError",
    "InvalidSqlQueryError",
    "DuplicateRegistrationError",
]
