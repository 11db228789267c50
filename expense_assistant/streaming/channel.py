"""
Event Channel

Bounded producer/consumer handoff between a turn (producer task) and the
HTTP response body (consumer). When the client goes away the consumer
closes the channel; later sends are dropped so the producer can finish
its tool side effects without writing to a dead sink.
"""

import asyncio
from typing import AsyncIterator, Optional

import structlog

from expense_assistant.streaming.events import StreamEvent


logger = structlog.get_logger(__name__)

_END = object()


class EventChannel:
    """Bounded async queue of stream events."""

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StreamEvent) -> bool:
        """
        Queue an event for the consumer.

        Returns:
            False if the consumer has gone away and the event was dropped
        """
        if self._closed or self._finished:
            logger.debug("event_dropped", type=event.type)
            return False
        await self._queue.put(event)
        return True

    async def finish(self) -> None:
        """Mark the end of the stream (producer side)."""
        if self._finished:
            return
        self._finished = True
        if not self._closed:
            await self._queue.put(_END)

    def close(self) -> None:
        """Stop accepting events (consumer side) and unblock the producer."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while not self._closed:
            item: Optional[object] = await self._queue.get()
            if item is _END:
                return
            yield item
