"""Bounded-concurrency execution of async workers.

``run_bounded`` runs a worker over every item with at most ``limit``
invocations in flight. Results keep input order and a failing worker only
affects its own slot.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class PoolError:
    """Failure captured in a result slot."""
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error}


async def run_bounded(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T, int], Awaitable[R]]
) -> List[Union[R, PoolError]]:
    """Run ``worker(item, index)`` for every item, ``limit`` at a time.

    Args:
        items: Items to process
        limit: Maximum concurrent worker invocations (coerced to >= 1)
        worker: Async callable receiving the item and its index

    Returns:
        List where ``results[i]`` is the worker result for ``items[i]`` or a
        PoolError if that worker raised

    Examples:
        >>> async def double(x, i):
        ...     return x * 2
        >>> asyncio.run(run_bounded([1, 2, 3], 2, double))
        [2, 4, 6]
    """
    semaphore = asyncio.Semaphore(max(1, int(limit)))
    results: List[Union[R, PoolError]] = [None] * len(items)  # type: ignore[list-item]

    async def run_one(index: int, item: T) -> None:
        async with semaphore:
            try:
                results[index] = await worker(item, index)
            except Exception as e:
                logger.error(f"Worker failed for item {index}: {e}")
                results[index] = PoolError(error=str(e))

    await asyncio.gather(*(run_one(i, item) for i, item in enumerate(items)))
    return results
