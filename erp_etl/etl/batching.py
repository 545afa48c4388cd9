"""
Fact batching.

Resolved fact rows accumulate in a FactBatch and are handed to the loader
whenever the batch reaches its maximum size, plus once more at end of
stream for the remainder. The loader is never called with an empty batch.
"""

from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

import structlog

from erp_etl.config.settings import DEFAULT_BATCH_SIZE

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Flush = Callable[[Sequence[T]], Awaitable[int]]


def resolve_batch_size(configured: Optional[int]) -> int:
    """Validate the configured batch size, falling back to the default."""
    if configured is None or configured <= 0:
        logger.warning(
            "Invalid batch size, using default",
            configured=configured,
            default=DEFAULT_BATCH_SIZE,
        )
        return DEFAULT_BATCH_SIZE
    return configured


class FactBatch(Generic[T]):
    """
    Bounded buffer of resolved fact rows.

    Args:
        kind: Fact kind, for log context
        max_size: Rows per loader call
        flush: Loader coroutine receiving each full batch
    """

    def __init__(self, kind: str, max_size: int, flush: Flush):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.kind = kind
        self.max_size = max_size
        self._flush = flush
        self._rows: List[T] = []
        self.inserted = 0
        self.batches = 0

    def __len__(self) -> int:
        return len(self._rows)

    async def add(self, row: T) -> None:
        self._rows.append(row)
        if len(self._rows) >= self.max_size:
            await self.flush()

    async def flush(self) -> int:
        """Hand pending rows to the loader. Loader errors propagate."""
        if not self._rows:
            return 0

        rows = list(self._rows)
        await self._flush(rows)
        self._rows.clear()

        self.inserted += len(rows)
        self.batches += 1
        logger.info(
            "Batch loaded",
            kind=self.kind,
            rows=len(rows),
            batch_no=self.batches,
            total_inserted=self.inserted,
        )
        return len(rows)
