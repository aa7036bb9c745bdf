"""
Database and collection provisioning.

Provisioners make sure the target database and collection exist before a
store runs any operation. Both check for the resource by id and create it
only when missing.

Invariants:
    - Ensuring an existing resource never fails and never modifies it
    - Partition key path and indexing policy are applied at creation only
    - The return value tells whether a creation was performed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import DocumentClientError
from .response import HTTP_CONFLICT

if TYPE_CHECKING:
    from .client.base import DocumentClient
    from .schema import CollectionDescriptor

logger = logging.getLogger(__name__)


class DatabaseProvisioner:
    """Ensures a database exists."""

    def __init__(self, client: DocumentClient) -> None:
        self._client = client

    async def ensure_database(self, name: str) -> bool:
        """Create the database if it does not exist.

        Returns:
            True if the database was created, False if it already existed

        Raises:
            DocumentClientError: If listing or creation fails
        """
        databases = await self._client.list_databases()
        if any(db.get("id") == name for db in databases):
            return False

        try:
            await self._client.create_database(name)
        except DocumentClientError as e:
            # Created concurrently by someone else
            if e.status_code == HTTP_CONFLICT:
                return False
            raise

        logger.info("Database created", extra={"database": name})
        return True


class CollectionProvisioner:
    """Ensures a collection exists with its partition key and indexing policy."""

    def __init__(self, client: DocumentClient) -> None:
        self._client = client

    async def ensure_collection(self, descriptor: CollectionDescriptor) -> bool:
        """Create the collection described by `descriptor` if it does not exist.

        An existing collection is left as is, even if its partition key or
        indexing policy differ from the descriptor.

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            DocumentClientError: If listing or creation fails
        """
        collections = await self._client.list_collections(descriptor.database_name)
        if any(c.get("id") == descriptor.collection_name for c in collections):
            return False

        try:
            await self._client.create_collection(
                descriptor.database_name,
                descriptor.collection_name,
                partition_key_path=descriptor.partition_key_path,
                throughput=descriptor.default_throughput,
                indexing_policy=descriptor.indexing_policy,
            )
        except DocumentClientError as e:
            if e.status_code == HTTP_CONFLICT:
                return False
            raise

        descriptor.throughput = descriptor.default_throughput
        logger.info(
            "Collection created",
            extra={
                "database": descriptor.database_name,
                "collection": descriptor.collection_name,
                "partition_key_path": descriptor.partition_key_path,
                "throughput": descriptor.default_throughput,
            },
        )
        return True
