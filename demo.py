#!/usr/bin/env python3
"""
cosmostore Demo - Shows single and batch operations.

Runs against the in-memory document client by default. Set
COSMOSTORE_AUTH_KEY (and COSMOSTORE_ENDPOINT_URL) to run against a real
Cosmos DB account or the local emulator instead.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

from sdk.cosmostore import (
    AzureCosmosDocumentClient,
    CosmosStore,
    DocumentClient,
    EntityMapping,
    InMemoryDocumentClient,
    StoreSettings,
)

logger = logging.getLogger(__name__)


@dataclass
class Book:
    name: str
    author: str
    id: str | None = None


@dataclass
class Author:
    username: str
    id: str | None = None


def setup_logging(level: str = "INFO") -> None:
    """Configure console logging for the demo."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("azure").setLevel(logging.WARNING)


def build_client(settings: StoreSettings) -> DocumentClient:
    if settings.auth_key is not None:
        return AzureCosmosDocumentClient.from_settings(settings)
    return InMemoryDocumentClient()


async def main() -> None:
    setup_logging(os.environ.get("COSMOSTORE_LOG_LEVEL", "INFO"))
    settings = StoreSettings(
        database_name=os.environ.get("COSMOSTORE_DATABASE_NAME", "localtest"),
        scale_collection_throughput_automatically=True,
    )
    settings.log_config()

    client = build_client(settings)
    print("=" * 60)
    print(f"cosmostore Demo ({type(client).__name__})")
    print("=" * 60)

    book_mapping = EntityMapping(Book, shared_collection="library")
    author_mapping = EntityMapping(Author, shared_collection="library")

    books = CosmosStore(client, settings, book_mapping)
    authors = CosmosStore(client, settings, author_mapping)
    await books.initialize()
    await authors.initialize()

    # 1. Single add
    print("\n[Step 1] Adding an author...")
    nick = Author(username="nick")
    outcome = await authors.add(nick)
    print(f"  - {nick.username} -> {outcome.status.value} (id={nick.id})")

    # 2. Batch add
    print("\n[Step 2] Adding 10 books in one batch...")
    result = await books.add_range(Book(name="MYBOOK", author=nick.id or "") for _ in range(10))
    print(f"  - successful={len(result.successful)} failed={len(result.failed)}")
    print(f"  - attempts={result.attempts} rounds={result.rounds}")

    # 3. Query (shared collection rewrite keeps authors out)
    print("\n[Step 3] Querying books by name...")
    found = await books.query_multiple("select * from c where c.name = @name", {"name": "MYBOOK"})
    print(f"  - {len(found)} books named MYBOOK")
    print(f"  - {len(await authors.query_multiple('select * from c'))} author(s) in the same collection")

    # 4. Find by id
    print("\n[Step 4] Finding the author by id...")
    author = await authors.find(nick.id or "")
    print(f"  - {author}")

    # 5. Remove by query
    print("\n[Step 5] Removing every MYBOOK...")
    removed = await books.remove_where("select * from c where c.name = 'MYBOOK'")
    print(f"  - removed={len(removed.successful)} failed={len(removed.failed)}")

    await client.close()

    print("\n" + "=" * 60)
    print("Demo Complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
