"""
Document client backends for cosmostore.

- DocumentClient: Protocol every backend implements
- InMemoryDocumentClient: In-process backend for tests and local development
- AzureCosmosDocumentClient: Azure Cosmos DB backend (azure-cosmos async SDK)
"""

from .base import DocumentClient, DocumentResponse
from .cosmos import AzureCosmosDocumentClient
from .memory import InMemoryDocumentClient

__all__ = [
    "DocumentClient",
    "DocumentResponse",
    "InMemoryDocumentClient",
    "AzureCosmosDocumentClient",
]
