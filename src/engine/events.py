# src/engine/events.py — v2
"""Typed progress events and the sinks that carry them.

Event order for one batch:
  start -> (progress | itemResult)* -> complete | fatalError

Once a sink is closed it accepts nothing further; the engine checks
``closed`` before starting jobs and before every emit.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import IO, Any, AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)

START = "start"
PROGRESS = "progress"
ITEM_RESULT = "itemResult"
COMPLETE = "complete"
FATAL_ERROR = "fatalError"

EVENT_TYPES = (START, PROGRESS, ITEM_RESULT, COMPLETE, FATAL_ERROR)
TERMINAL_EVENTS = (COMPLETE, FATAL_ERROR)


def format_sse(event: str, payload: dict[str, Any]) -> str:
    """Server-sent-events framing: ``event: X\\ndata: {json}\\n\\n``."""
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


class ProgressSink(ABC):
    """Destination for one batch's event stream."""

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver one event; ignored once the sink is closed."""
        if self._closed:
            logger.debug("Dropping %s event on closed sink", event)
            return
        await self._deliver(event, payload)

    async def close(self) -> None:
        """Close the stream (idempotent)."""
        if self._closed:
            return
        self._closed = True
        await self._on_close()

    @abstractmethod
    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        """Transport-specific delivery."""

    async def _on_close(self) -> None:
        return None


class MemorySink(ProgressSink):
    """Collects events in a list.

    Args:
        close_when: Optional predicate called after each delivered event;
            when it returns True the sink closes itself, as a departing
            subscriber would.
    """

    def __init__(
        self, close_when: Callable[[str, dict[str, Any]], bool] | None = None
    ) -> None:
        super().__init__()
        self.events: list[tuple[str, dict[str, Any]]] = []
        self._close_when = close_when

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))
        if self._close_when is not None and self._close_when(event, payload):
            await self.close()

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of_type(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


_CLOSED = object()


class QueueSink(ProgressSink):
    """Async-iterable sink for a transport (SSE handler, websocket...).

    The consumer iterates ``async for event, payload in sink`` and calls
    ``close()`` if it disconnects early. With ``maxsize`` set, delivery
    waits for the consumer; closing releases any waiting producer and
    consumer, and events already queued are still drained.
    """

    def __init__(self, maxsize: int = 0) -> None:
        super().__init__()
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue(maxsize=maxsize)
        self._closing = asyncio.Event()

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        delivered = await self._until_closed(self._queue.put((event, payload)))
        if delivered is _CLOSED:
            logger.debug("Dropping %s event: sink closed while waiting for the consumer", event)

    async def _on_close(self) -> None:
        self._closing.set()

    def __aiter__(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        while True:
            if not self._queue.empty():
                item = self._queue.get_nowait()
            elif self._closed:
                return
            else:
                got = await self._until_closed(self._queue.get())
                if got is _CLOSED:
                    continue
                item = got
            yield item
            if item[0] in TERMINAL_EVENTS:
                return

    async def _until_closed(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the sink closes first (then return _CLOSED)."""
        task = asyncio.ensure_future(awaitable)
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            done, _ = await asyncio.wait({task, closing}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, closing):
                if not pending.done():
                    pending.cancel()
        if task in done:
            return task.result()
        return _CLOSED


class JsonLinesSink(ProgressSink):
    """Writes one JSON object per event to a text stream (CLI output)."""

    def __init__(self, stream: IO[str]) -> None:
        super().__init__()
        self._stream = stream

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        self._stream.write(json.dumps({"event": event, "data": payload}, default=str) + "\n")
        self._stream.flush()
