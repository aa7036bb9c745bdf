"""
Entity mapping and collection descriptors for cosmostore.

This module provides the per-type metadata the store needs:
- EntityMapping: How an entity type maps to documents (id, partition key, collection)
- CollectionDescriptor: The collection a store operates on

Mappings are declared explicitly, once per type, instead of being
discovered from the entity at runtime.

Invariants:
    - The document id is always stored under the "id" property
    - Shared collections are partitioned by document id
    - A missing id is populated with a new UUID4 string at write time

Example:
    >>> @dataclass
    ... class Book:
    ...     name: str
    ...     id: str | None = None
    >>>
    >>> BookMapping = EntityMapping(Book, collection_name="books")
    >>> BookMapping.partition_key_path
    '/id'
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, Callable, Generic, TypeVar

from .config import MINIMUM_THROUGHPUT, StoreSettings
from .errors import EntityMappingError
from .scaler import ThroughputGuard

T = TypeVar("T")

DOCUMENT_ID = "id"
ENTITY_NAME_FIELD = "cosmosEntityName"
SYSTEM_FIELDS = frozenset({"_rid", "_self", "_etag", "_attachments", "_ts"})


@dataclass(frozen=True)
class EntityMapping(Generic[T]):
    """Document mapping for one entity type.

    Attributes:
        entity_type: The mapped class (a dataclass unless converters are given)
        collection_name: Dedicated collection (defaults to "<type name>s", lower-cased)
        id_field: Attribute holding the document id
        partition_key_field: Attribute holding the partition key value
        shared_collection: Name of a collection shared with other types
        entity_name: Discriminator value inside a shared collection
        throughput: Throughput override for this type's collection
        serializer: Optional entity -> dict converter
        deserializer: Optional dict -> entity converter
    """

    entity_type: type[T]
    collection_name: str | None = None
    id_field: str = DOCUMENT_ID
    partition_key_field: str | None = None
    shared_collection: str | None = None
    entity_name: str | None = None
    throughput: int | None = None
    serializer: Callable[[T], dict[str, Any]] | None = None
    deserializer: Callable[[dict[str, Any]], T] | None = None
    _field_names: frozenset[str] = dataclass_field(
        init=False, repr=False, compare=False, default=frozenset()
    )

    def __post_init__(self) -> None:
        """Validate the mapping against the entity type."""
        name = self.name
        is_dataclass = dataclasses.is_dataclass(self.entity_type)
        if not is_dataclass and (self.serializer is None or self.deserializer is None):
            raise EntityMappingError(
                f"'{name}' is not a dataclass; serializer and deserializer are required",
                entity_type=name,
            )

        if is_dataclass:
            names = frozenset(f.name for f in dataclasses.fields(self.entity_type))
            object.__setattr__(self, "_field_names", names)
            if self.id_field not in names:
                raise EntityMappingError(
                    f"'{name}' has no id field '{self.id_field}'", entity_type=name
                )
            if self.partition_key_field and self.partition_key_field not in names:
                raise EntityMappingError(
                    f"'{name}' has no partition key field '{self.partition_key_field}'",
                    entity_type=name,
                )

        if self.shared_collection and self.partition_key_field:
            raise EntityMappingError(
                f"'{name}' uses shared collection '{self.shared_collection}', "
                "which is partitioned by document id",
                entity_type=name,
            )
        if self.throughput is not None and self.throughput < MINIMUM_THROUGHPUT:
            raise EntityMappingError(
                f"Throughput for '{name}' must be at least {MINIMUM_THROUGHPUT}",
                entity_type=name,
            )

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def is_shared(self) -> bool:
        return self.shared_collection is not None

    @property
    def resolved_collection_name(self) -> str:
        if self.shared_collection:
            return self.shared_collection
        return self.collection_name or f"{self.name.lower()}s"

    @property
    def discriminator(self) -> str:
        """Value of the entity name field inside a shared collection."""
        return self.entity_name or self.name.lower()

    @property
    def partition_key_path(self) -> str:
        if self.is_shared or not self.partition_key_field or self.partition_key_field == self.id_field:
            return f"/{DOCUMENT_ID}"
        return f"/{self.partition_key_field}"

    def get_document_id(self, entity: T) -> str | None:
        """Return the entity's document id, or None when unset."""
        value = getattr(entity, self.id_field, None)
        if value is None or value == "":
            return None
        return str(value)

    def ensure_document_id(self, entity: T) -> str:
        """Return the document id, generating and assigning one if missing."""
        document_id = self.get_document_id(entity)
        if document_id is None:
            document_id = str(uuid.uuid4())
            setattr(entity, self.id_field, document_id)
        return document_id

    def partition_key_value(self, entity: T) -> Any:
        """Return the value routing this entity to its partition."""
        if self.partition_key_path == f"/{DOCUMENT_ID}":
            return self.get_document_id(entity)
        return getattr(entity, self.partition_key_field)  # type: ignore[arg-type]

    def to_document(self, entity: T) -> dict[str, Any]:
        """Convert an entity to the document stored by the service."""
        if self.serializer is not None:
            document = dict(self.serializer(entity))
        else:
            document = dataclasses.asdict(entity)  # type: ignore[call-overload]

        if self.id_field != DOCUMENT_ID and self.id_field in document:
            document[DOCUMENT_ID] = document.pop(self.id_field)
        if self.is_shared:
            document[ENTITY_NAME_FIELD] = self.discriminator
        return document

    def from_document(self, document: dict[str, Any]) -> T:
        """Convert a stored document back into an entity."""
        data = {
            key: value
            for key, value in document.items()
            if key not in SYSTEM_FIELDS and key != ENTITY_NAME_FIELD
        }
        if self.id_field != DOCUMENT_ID and DOCUMENT_ID in data:
            data[self.id_field] = data.pop(DOCUMENT_ID)

        if self.deserializer is not None:
            return self.deserializer(data)
        return self.entity_type(**{k: v for k, v in data.items() if k in self._field_names})


@dataclass
class CollectionDescriptor:
    """The collection a store operates on.

    Only `throughput` changes after creation; the scaler updates it while a
    batch holds the collection's throughput lease.

    Attributes:
        database_name: Owning database
        collection_name: Collection id
        throughput: Currently provisioned throughput
        default_throughput: Throughput used when creating the collection
        maximum_throughput: Ceiling for automatic upscaling
        is_shared: Whether several entity types live in the collection
        partition_key_path: Partition key path, e.g. "/id"
        indexing_policy: Indexing policy applied at creation
    """

    database_name: str
    collection_name: str
    throughput: int
    default_throughput: int
    maximum_throughput: int
    is_shared: bool = False
    partition_key_path: str = f"/{DOCUMENT_ID}"
    indexing_policy: dict[str, Any] | None = None
    throughput_guard: ThroughputGuard = dataclass_field(
        default_factory=ThroughputGuard, repr=False, compare=False
    )

    @classmethod
    def for_mapping(
        cls,
        mapping: EntityMapping[Any],
        settings: StoreSettings,
        collection_name: str | None = None,
    ) -> CollectionDescriptor:
        """Build the descriptor for a mapped type."""
        throughput = mapping.throughput or settings.default_collection_throughput
        return cls(
            database_name=settings.database_name,
            collection_name=collection_name or mapping.resolved_collection_name,
            throughput=throughput,
            default_throughput=throughput,
            maximum_throughput=max(settings.maximum_upscale_throughput, throughput),
            is_shared=mapping.is_shared,
            partition_key_path=mapping.partition_key_path,
            indexing_policy=settings.indexing_policy,
        )

    @property
    def link(self) -> str:
        return f"dbs/{self.database_name}/colls/{self.collection_name}"

    @property
    def minimum_throughput(self) -> int:
        return MINIMUM_THROUGHPUT

    @property
    def partition_key_is_id(self) -> bool:
        return self.partition_key_path == f"/{DOCUMENT_ID}"
