"""
Stage channel: run one pipeline stage as a producer task feeding a bounded
queue, and hand its items to a single consumer in order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 64

_END = object()


@dataclass
class _StageFailed:
    error: Exception


async def relay(stage: AsyncIterator[T], maxsize: int = DEFAULT_QUEUE_SIZE) -> AsyncIterator[T]:
    """
    Drain a stage generator through a bounded queue.

    Items come out in the order the stage produced them. An exception raised
    by the stage is re-raised here, after the items that preceded it.

    When the consumer stops early (or is cancelled) the producer task is
    cancelled and the stage generator is closed, which releases whatever
    upstream response it holds open.

    Args:
        stage: Async generator producing the stage's items
        maxsize: Queue bound; the producer waits when the consumer lags

    Yields:
        The stage's items
    """
    queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)

    async def produce() -> None:
        try:
            async for item in stage:
                await queue.put(item)
        except Exception as e:
            await queue.put(_StageFailed(e))
            return
        await queue.put(_END)

    producer = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is _END:
                return
            if isinstance(item, _StageFailed):
                raise item.error
            yield item  # type: ignore[misc]
    finally:
        if not producer.done():
            logger.info("channel: consumer left early, cancelling stage")
            producer.cancel()
        # Wait for the producer to unwind before closing the generator it iterates
        await asyncio.gather(producer, return_exceptions=True)
        aclose = getattr(stage, "aclose", None)
        if aclose is not None:
            await aclose()
