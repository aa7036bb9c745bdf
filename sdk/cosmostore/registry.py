"""
Mapping registry for cosmostore.

This module provides a registry of entity mappings for:
- Registering one EntityMapping per entity type
- Lookup by entity type or type name
- Guarding shared collections against clashing discriminators

Mappings are built once at registration time; stores resolve them by type
instead of inspecting entities at runtime.

Example:
    >>> from sdk.cosmostore import EntityMapping, get_registry
    >>>
    >>> get_registry().register(EntityMapping(Book, shared_collection="library"))
    >>> get_registry().get(Book).discriminator
    'book'
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Any

from .errors import CosmosStoreError
from .schema import EntityMapping

# Global registry
_global_registry: MappingRegistry | None = None
_registry_lock = threading.Lock()


class DuplicateRegistrationError(CosmosStoreError):
    """Type or shared-collection discriminator is already registered."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="DUPLICATE_REGISTRATION")


class MappingRegistry:
    """Registry of entity mappings keyed by entity type.

    Example:
        >>> registry = MappingRegistry()
        >>> registry.register(EntityMapping(Book))
        >>> registry.get(Book).resolved_collection_name
        'books'
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._mappings: dict[type, EntityMapping[Any]] = {}
        self._by_name: dict[str, EntityMapping[Any]] = {}
        self._lock = threading.Lock()

    def register(self, mapping: EntityMapping[Any]) -> EntityMapping[Any]:
        """Register a mapping.

        Args:
            mapping: EntityMapping to register

        Returns:
            The registered mapping

        Raises:
            DuplicateRegistrationError: If the type is already registered, or
                another type in the same shared collection uses the same
                discriminator
        """
        with self._lock:
            if mapping.entity_type in self._mappings:
                raise DuplicateRegistrationError(
                    f"'{mapping.name}' is already registered"
                )

            if mapping.is_shared:
                for other in self._mappings.values():
                    if (
                        other.shared_collection == mapping.shared_collection
                        and other.discriminator == mapping.discriminator
                    ):
                        raise DuplicateRegistrationError(
                            f"Entity name '{mapping.discriminator}' in shared collection "
                            f"'{mapping.shared_collection}' is already used by '{other.name}'"
                        )

            self._mappings[mapping.entity_type] = mapping
            self._by_name[mapping.name] = mapping
        return mapping

    def get(self, entity_type: type | str) -> EntityMapping[Any] | None:
        """Get a mapping by entity type or type name."""
        if isinstance(entity_type, str):
            return self._by_name.get(entity_type)
        return self._mappings.get(entity_type)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._mappings

    def mappings(self) -> Iterator[EntityMapping[Any]]:
        """Iterate over all registered mappings."""
        return iter(list(self._mappings.values()))

    def shared_collection_members(self, collection_name: str) -> list[EntityMapping[Any]]:
        """Return the mappings stored in a shared collection."""
        return [m for m in self._mappings.values() if m.shared_collection == collection_name]


def get_registry() -> MappingRegistry:
    """Get the global mapping registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = MappingRegistry()
        return _global_registry


def register_entity(mapping: EntityMapping[Any]) -> EntityMapping[Any]:
    """Register a mapping in the global registry."""
    return get_registry().register(mapping)


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
