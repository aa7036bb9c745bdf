"""
cosmostore Test Suite.

This package contains:
- unit/: Unit tests (no external services; the Azure SDK is mocked)
- integration/: Store tests against the in-memory document client
"""
