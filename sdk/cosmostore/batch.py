"""
Batch operation engine.

Runs one single-entity operation per entity, concurrently, and retries only
the entities whose latest attempt was rate limited.

Flow of one batch:
    1. Ask the scaler whether to upscale (it may run the first operation as a probe)
    2. Issue the pending operations concurrently and join
    3. Recompute the pending set from the latest outcome per entity
    4. Repeat 2-3 while anything is rate limited
    5. Release the throughput lease, whatever happened above

Invariants:
    - Every input entity ends in exactly one of successful/failed
    - Only the latest attempt per entity decides its classification
    - Retry is iterative, immediate and unbounded unless a cap or backoff is configured
    - Throughput restore runs exactly once per batch, including on failure
    - DocumentClientError abandons the batch into a result; other errors propagate

How to change safely:
    - Never let an in-flight round outlive the batch (join before deciding)
    - Keep the engine free of per-store state; everything lives in _BatchRun
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Generic, TypeVar

from .errors import DocumentClientError
from .response import BatchResult, OperationOutcome

if TYPE_CHECKING:
    from .scaler import ThroughputLease, ThroughputScaler
    from .schema import CollectionDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[T], Awaitable[OperationOutcome[T]]]


class _BatchRun(Generic[T]):
    """Mutable state of one batch invocation."""

    def __init__(self, items: list[T], operation: Operation[T]) -> None:
        self.items = items
        self.operation = operation
        self.latest: dict[int, OperationOutcome[T]] = {}
        self.attempts = 0
        self.rounds = 0

    async def attempt(self, index: int) -> OperationOutcome[T]:
        self.attempts += 1
        outcome = await self.operation(self.items[index])
        self.latest[index] = outcome
        if not outcome.success:
            logger.debug(
                "Batch operation failed",
                extra={"index": index, "status": outcome.status.value, "error": outcome.error},
            )
        return outcome

    async def run_round(self, indexes: list[int]) -> None:
        self.rounds += 1
        results = await asyncio.gather(
            *(self.attempt(i) for i in indexes), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            unclassified = [e for e in errors if not isinstance(e, DocumentClientError)]
            raise (unclassified or errors)[0]

    def pending(self) -> list[int]:
        """Indexes never attempted or whose latest attempt was rate limited."""
        return [
            i
            for i in range(len(self.items))
            if i not in self.latest or self.latest[i].is_rate_limited
        ]

    def result(self, error: Exception | None) -> BatchResult[T]:
        successful: list[OperationOutcome[T]] = []
        failed: list[OperationOutcome[T]] = []
        for index, entity in enumerate(self.items):
            outcome = self.latest.get(index)
            if isinstance(error, DocumentClientError) and (
                outcome is None or outcome.is_rate_limited
            ):
                outcome = OperationOutcome.failed(entity, error)
            if outcome is None:
                continue
            (successful if outcome.success else failed).append(outcome)
        return BatchResult(
            successful=tuple(successful),
            failed=tuple(failed),
            attempts=self.attempts,
            rounds=self.rounds,
            error=error,
        )


class BatchExecutor:
    """Executes multi-entity operations with rate-limit retry.

    The executor holds no state across calls; concurrent batches are safe.

    Example:
        >>> executor = BatchExecutor(scaler)
        >>> result = await executor.execute(collection, books, store.add)
        >>> len(result.successful) + len(result.failed) == len(books)
        True
    """

    def __init__(
        self,
        scaler: ThroughputScaler,
        *,
        max_rate_limit_retries: int | None = None,
        rate_limit_backoff_ms: int = 0,
    ) -> None:
        """Initialize the executor.

        Args:
            scaler: Throughput scaler consulted around every batch
            max_rate_limit_retries: Cap on retry rounds (None = unbounded)
            rate_limit_backoff_ms: Delay before each retry round (0 = immediate)
        """
        self._scaler = scaler
        self._max_rate_limit_retries = max_rate_limit_retries
        self._rate_limit_backoff_ms = rate_limit_backoff_ms

    async def execute(
        self,
        collection: CollectionDescriptor,
        entities: Sequence[T],
        operation: Operation[T],
        *,
        cancellation: asyncio.Event | None = None,
    ) -> BatchResult[T]:
        """Run `operation` for every entity and aggregate the outcomes.

        Args:
            collection: Collection the operations target
            entities: Entities to process (an empty sequence makes no calls)
            operation: Single-entity operation returning an OperationOutcome
            cancellation: Once set, no further retry rounds are started

        Returns:
            BatchResult with every entity in exactly one of successful/failed

        Raises:
            Exception: Any error other than DocumentClientError, after the
                throughput lease has been released
        """
        items = list(entities)
        if not items:
            return BatchResult()

        run = _BatchRun(items, operation)
        lease: ThroughputLease | None = None
        error: Exception | None = None
        try:
            lease = await self._scaler.maybe_upscale(
                collection, len(items), lambda: run.attempt(0)
            )
            await self._run_until_settled(run, collection, cancellation)
        except DocumentClientError as e:
            error = e
            logger.warning(
                "Batch abandoned",
                extra={
                    "collection": collection.collection_name,
                    "batch_size": len(items),
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
        finally:
            if lease is not None:
                restore_error = await self._release(collection, lease)
                if restore_error is not None and error is None:
                    error = restore_error

        result = run.result(error)
        logger.debug(
            "Batch completed",
            extra={
                "collection": collection.collection_name,
                "successful": len(result.successful),
                "failed": len(result.failed),
                "attempts": result.attempts,
                "rounds": result.rounds,
            },
        )
        return result

    async def _run_until_settled(
        self,
        run: _BatchRun[T],
        collection: CollectionDescriptor,
        cancellation: asyncio.Event | None,
    ) -> None:
        pending = run.pending()
        retries = 0
        while pending:
            await run.run_round(pending)
            pending = run.pending()
            if not pending:
                return

            if cancellation is not None and cancellation.is_set():
                logger.warning(
                    "Batch cancelled with rate-limited entities remaining",
                    extra={"collection": collection.collection_name, "remaining": len(pending)},
                )
                return
            if (
                self._max_rate_limit_retries is not None
                and retries >= self._max_rate_limit_retries
            ):
                logger.warning(
                    "Rate-limit retry cap reached",
                    extra={
                        "collection": collection.collection_name,
                        "remaining": len(pending),
                        "retries": retries,
                    },
                )
                return

            retries += 1
            logger.debug(
                "Retrying rate-limited operations",
                extra={
                    "collection": collection.collection_name,
                    "retry": retries,
                    "pending": len(pending),
                },
            )
            if self._rate_limit_backoff_ms:
                await asyncio.sleep(self._rate_limit_backoff_ms / 1000)

    async def _release(
        self, collection: CollectionDescriptor, lease: ThroughputLease
    ) -> DocumentClientError | None:
        try:
            await self._scaler.restore(collection, lease)
        except DocumentClientError as e:
            logger.error(
                "Failed to restore collection throughput",
                extra={
                    "collection": collection.collection_name,
                    "original_throughput": lease.original_throughput,
                    "status_code": e.status_code,
                },
            )
            return e
        return None
