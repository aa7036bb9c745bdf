"""
Throughput scaler for batch operations.

Before a large batch the scaler may raise the collection's provisioned
throughput; afterwards it restores the value recorded before the raise.

Concurrent batches on one collection coordinate through a ThroughputGuard
(one per CollectionDescriptor):
- The first batch to upscale records the original throughput
- Later batches join the lease, raising further if they need more
- Only the last holder restores the recorded original

Invariants:
    - Disabled scaling makes no client calls at all
    - Upscaled throughput is a whole hundred within [400, maximum]
    - Restore sets the recorded original, never a hardcoded default
    - The original stays recorded until a restore succeeds; a later lease inherits it
    - The scaler holds no state across calls; the lease is returned to the caller

How to change safely:
    - Keep every throughput change under the guard lock
    - A lease must be restored exactly once, even when the batch fails
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .config import MINIMUM_THROUGHPUT, THROUGHPUT_STEP, StoreSettings

if TYPE_CHECKING:
    from .client.base import DocumentClient
    from .response import OperationOutcome
    from .schema import CollectionDescriptor

logger = logging.getLogger(__name__)

ProbeCallable = Callable[[], Awaitable["OperationOutcome[Any]"]]


@dataclass
class ThroughputGuard:
    """Per-collection coordination state for throughput changes.

    Attributes:
        holders: Number of batches currently holding an upscale lease
        original_throughput: Throughput recorded by the first holder
    """

    holders: int = 0
    original_throughput: int | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True)
class ThroughputLease:
    """What one batch owes the collection after it finishes.

    Attributes:
        collection_name: Collection the lease applies to
        acquired: Whether the batch holds the collection's upscale lease
        original_throughput: Throughput to restore once every holder is done
        upscaled_throughput: Throughput in effect while the lease is held
    """

    collection_name: str
    acquired: bool = False
    original_throughput: int | None = None
    upscaled_throughput: int | None = None

    @property
    def restore_owed(self) -> bool:
        return self.acquired


class ThroughputScaler:
    """Raises and restores collection throughput around batches."""

    def __init__(self, client: DocumentClient, settings: StoreSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return self._settings.scale_collection_throughput_automatically

    @staticmethod
    def required_throughput(request_charge: float, batch_size: int, maximum: int) -> int:
        """Throughput needed to run `batch_size` operations in one window.

        Rounded up to a whole hundred and clamped to [400, maximum].
        """
        needed = math.ceil(request_charge * batch_size / THROUGHPUT_STEP) * THROUGHPUT_STEP
        return max(MINIMUM_THROUGHPUT, min(needed, maximum))

    async def _measure_request_charge(
        self, collection: CollectionDescriptor, probe: ProbeCallable
    ) -> float:
        """Run the probe until it is not rate limited and return its charge.

        A throttled response reports no usable charge. Probing again follows
        the batch retry settings (cap and backoff).
        """
        outcome = await probe()
        cap = self._settings.max_rate_limit_retries
        retries = 0
        while outcome.is_rate_limited and (cap is None or retries < cap):
            retries += 1
            logger.debug(
                "Request charge probe rate limited",
                extra={"collection": collection.collection_name, "retry": retries},
            )
            if self._settings.rate_limit_backoff_ms:
                await asyncio.sleep(self._settings.rate_limit_backoff_ms / 1000)
            outcome = await probe()
        return outcome.request_charge

    async def maybe_upscale(
        self,
        collection: CollectionDescriptor,
        batch_size: int,
        probe: ProbeCallable,
    ) -> ThroughputLease:
        """Upscale the collection if the batch needs more throughput.

        When no request charge estimate is configured, `probe` runs the
        batch's first operation and its reported charge is used instead.
        A rate-limited probe is run again. The caller owns the probe's outcome.
        Autoscale-provisioned collections are never upscaled.

        Args:
            collection: Target collection
            batch_size: Number of operations in the batch
            probe: Runs the first operation of the batch

        Returns:
            The lease to pass to restore()

        Raises:
            DocumentClientError: If reading or replacing throughput fails
        """
        lease = ThroughputLease(collection.collection_name)
        if not self.enabled:
            return lease

        request_charge = self._settings.estimated_request_charge
        if request_charge is None:
            request_charge = await self._measure_request_charge(collection, probe)
        if request_charge <= 0:
            return lease

        required = self.required_throughput(
            request_charge, batch_size, collection.maximum_throughput
        )
        guard = collection.throughput_guard
        async with guard.lock:
            current = await self._client.read_collection_throughput(
                collection.database_name, collection.collection_name
            )
            if current is None:
                logger.debug(
                    "Collection is autoscale-provisioned, skipping upscale",
                    extra={"collection": collection.collection_name},
                )
                return lease

            collection.throughput = current
            # an original left by a failed restore is still owed
            owed = guard.original_throughput is not None
            if required <= current and guard.holders == 0 and not owed:
                logger.debug(
                    "No upscale needed",
                    extra={
                        "collection": collection.collection_name,
                        "current": current,
                        "required": required,
                    },
                )
                return lease

            original = guard.original_throughput if owed else current
            if required > current:
                await self._client.update_collection_throughput(
                    collection.database_name, collection.collection_name, required
                )
                collection.throughput = required
                logger.info(
                    "Collection throughput upscaled",
                    extra={
                        "collection": collection.collection_name,
                        "from": current,
                        "to": required,
                        "batch_size": batch_size,
                    },
                )
            guard.original_throughput = original
            guard.holders += 1
            return ThroughputLease(
                collection.collection_name,
                acquired=True,
                original_throughput=guard.original_throughput,
                upscaled_throughput=collection.throughput,
            )

    async def restore(self, collection: CollectionDescriptor, lease: ThroughputLease) -> None:
        """Release a lease; the last holder restores the original throughput.

        Raises:
            DocumentClientError: If replacing throughput fails
        """
        if not lease.restore_owed:
            return

        guard = collection.throughput_guard
        async with guard.lock:
            guard.holders -= 1
            if guard.holders > 0:
                return

            original = guard.original_throughput
            if original is None:
                return
            if collection.throughput == original:
                guard.original_throughput = None
                return

            upscaled = collection.throughput
            # the original stays recorded until the service accepts it
            await self._client.update_collection_throughput(
                collection.database_name, collection.collection_name, original
            )
            guard.original_throughput = None
            collection.throughput = original
            logger.info(
                "Collection throughput restored",
                extra={"collection": collection.collection_name, "from": upscaled, "to": original},
            )
