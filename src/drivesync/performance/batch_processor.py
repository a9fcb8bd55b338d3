"""Chunked batch scheduling with bounded concurrency."""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..utils.logging import get_logger


T = TypeVar('T')
R = TypeVar('R')

logger = get_logger(__name__)


async def run_batch(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
    should_stop: Optional[Callable[[], bool]] = None
) -> List[R]:
    """Run items through a worker, at most ``concurrency`` at a time.

    Items are split into consecutive chunks of ``concurrency``. Every worker
    in a chunk is started together and the whole chunk settles before the
    next one starts. A failing worker is logged and left out of the result;
    it never aborts its chunk or the batch.

    Args:
        items: Items to process
        worker: Coroutine function applied to each item
        concurrency: Chunk size, clamped to at least 1
        should_stop: Checked before each chunk; True stops scheduling

    Returns:
        Results of the successful workers, in item order
    """
    concurrency = max(1, int(concurrency or 1))
    results: List[R] = []

    for start in range(0, len(items), concurrency):
        if should_stop is not None and should_stop():
            logger.info(
                "Batch stopped before completion",
                remaining_items=len(items) - start
            )
            break

        chunk = items[start:start + concurrency]
        settled = await asyncio.gather(
            *(worker(item) for item in chunk),
            return_exceptions=True
        )

        for offset, result in enumerate(settled):
            if isinstance(result, Exception):
                logger.error(
                    "Batch worker failed",
                    item_index=start + offset,
                    error=str(result),
                    error_type=type(result).__name__
                )
                continue
            if isinstance(result, BaseException):
                raise result
            results.append(result)

    return results
