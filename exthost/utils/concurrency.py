"""Bounded worker pool over a list of items."""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_concurrent(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[None]],
    limit: int = 3,
) -> None:
    """Run fn over items with at most `limit` in flight.

    Workers pull from a shared pending queue. A failing item is logged and
    does not stop its siblings.
    """
    pending: deque[T] = deque(items)
    if not pending:
        return
    limit = max(1, min(limit, len(pending)))

    async def worker() -> None:
        while pending:
            item = pending.popleft()
            try:
                await fn(item)
            except Exception as e:
                logger.exception("concurrent task for %r failed: %s", item, e)

    await asyncio.gather(*(worker() for _ in range(limit)))
