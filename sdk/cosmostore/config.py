"""
Configuration for cosmostore.

Uses pydantic-settings for environment variable loading. Every value can be
passed explicitly or read from a COSMOSTORE_* environment variable.

Invariants:
    - database_name is required and never empty
    - Throughput values are at least MINIMUM_THROUGHPUT
    - The auth key is a SecretStr and is never logged

How to change safely:
    - Add new settings with defaults that keep current behavior
    - Retry cap and backoff default to the unbounded, immediate design
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

MINIMUM_THROUGHPUT = 400
THROUGHPUT_STEP = 100
DEFAULT_MAXIMUM_UPSCALE_THROUGHPUT = 10000


class StoreSettings(BaseSettings):
    """Store configuration loaded from arguments or environment."""

    database_name: str = Field(min_length=1, description="Target database name")
    endpoint_url: str = Field(default="https://localhost:8081", description="Account endpoint")
    auth_key: SecretStr | None = Field(default=None, description="Account key")

    # Throughput
    default_collection_throughput: int = Field(
        default=MINIMUM_THROUGHPUT,
        ge=MINIMUM_THROUGHPUT,
        description="Throughput for newly created collections",
    )
    maximum_upscale_throughput: int = Field(
        default=DEFAULT_MAXIMUM_UPSCALE_THROUGHPUT,
        ge=MINIMUM_THROUGHPUT,
        description="Ceiling for automatic upscaling",
    )
    scale_collection_throughput_automatically: bool = Field(
        default=False, description="Raise throughput before large batches"
    )
    estimated_request_charge: float | None = Field(
        default=None,
        gt=0,
        description="Per-operation cost estimate (None = measure with a probe operation)",
    )

    # Collection creation
    indexing_policy: dict[str, Any] | None = Field(
        default=None, description="Indexing policy applied when creating collections"
    )

    # Rate-limit retry (None / 0 keep the unbounded, immediate behavior)
    max_rate_limit_retries: int | None = Field(
        default=None, ge=0, description="Cap on rate-limit retry rounds"
    )
    rate_limit_backoff_ms: int = Field(
        default=0, ge=0, description="Delay between rate-limit retry rounds"
    )

    model_config = {"env_prefix": "COSMOSTORE_"}

    @model_validator(mode="after")
    def _check_throughput_bounds(self) -> StoreSettings:
        if self.maximum_upscale_throughput < self.default_collection_throughput:
            raise ValueError(
                "maximum_upscale_throughput must be >= default_collection_throughput"
            )
        return self

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Store configuration loaded",
            extra={
                "database_name": self.database_name,
                "endpoint_url": self.endpoint_url,
                "auth_key": "***" if self.auth_key else None,
                "default_collection_throughput": self.default_collection_throughput,
                "maximum_upscale_throughput": self.maximum_upscale_throughput,
                "autoscale": self.scale_collection_throughput_automatically,
                "max_rate_limit_retries": self.max_rate_limit_retries,
            },
        )
