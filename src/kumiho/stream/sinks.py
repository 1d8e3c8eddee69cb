"""
Event sink abstractions for decoupling delivery from the stream consumer.

The consumer writes one record at a time into a sink; how and when those
records reach the host (a queue drained by another task, a callback, stdout)
is the sink's business.
"""

import asyncio
import inspect
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TextIO, runtime_checkable

from core.utils.json_serializers import json_serializer

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


@runtime_checkable
class EventSink(Protocol):
    """
    Protocol for sinks that receive delivered stream events.

    write() is awaited before the consumer reads the next frame, so a slow
    sink applies backpressure to the stream.
    """

    async def start(self) -> None:
        """Initialize the sink."""
        ...

    async def stop(self) -> None:
        """Release resources. Already-written records must not be lost."""
        ...

    async def write(self, record: dict[str, Any]) -> None:
        """Deliver one event record."""
        ...


class QueueSink:
    """
    Bounded asyncio.Queue sink.

    write() blocks while the queue is full; the host drains it with get() or
    by iterating the sink.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self._records_written = 0

    @property
    def queue(self) -> asyncio.Queue:
        return self._queue

    @property
    def records_written(self) -> int:
        return self._records_written

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        logger.debug(
            "QueueSink stopped",
            extra={"events_delivered": self._records_written},
        )

    async def write(self, record: dict[str, Any]) -> None:
        await self._queue.put(record)
        self._records_written += 1

    async def get(self) -> dict[str, Any]:
        return await self._queue.get()

    def drain(self) -> list[dict[str, Any]]:
        """Pop every record currently queued without waiting."""
        records = []
        while not self._queue.empty():
            records.append(self._queue.get_nowait())
        return records

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self._queue.get()


class CallbackSink:
    """Calls a plain or async callback for each record."""

    def __init__(self, callback: Callable[[dict[str, Any]], Awaitable[None] | None]):
        self._callback = callback

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def write(self, record: dict[str, Any]) -> None:
        result = self._callback(record)
        if inspect.isawaitable(result):
            await result


class JsonLinesSink:
    """Writes each record as one JSON line to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream
        self._records_written = 0

    @property
    def records_written(self) -> int:
        return self._records_written

    async def start(self) -> None:
        if self._stream is None:
            self._stream = sys.stdout

    async def stop(self) -> None:
        if self._stream is not None:
            self._stream.flush()

    async def write(self, record: dict[str, Any]) -> None:
        if self._stream is None:
            raise RuntimeError("JsonLinesSink not started. Call start() first.")
        self._stream.write(json.dumps(record, default=json_serializer) + "\n")
        self._stream.flush()
        self._records_written += 1
