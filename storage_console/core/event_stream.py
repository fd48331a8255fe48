"""Ordered progress channel between a running operation and its caller.

Operations write pydantic event models into an ``EventStream``; ``drive`` runs
the operation as a task and yields the events in emission order. The HTTP
layer turns that iterator into newline-delimited JSON with ``ndjson_response``.
"""
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from fastapi.responses import StreamingResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

_END = object()

# Producers keep running after the consumer disconnects; hold a reference so
# the task is not garbage collected mid-flight.
_detached: Set[asyncio.Task] = set()


class EventStream:
    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, event: BaseModel) -> None:
        if self._closed:
            logger.debug(f"Dropping event written after close: {event!r}")
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def events(self) -> AsyncIterator[BaseModel]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item

    def __aiter__(self):
        return self.events()


async def drive(producer: Callable[[EventStream], Awaitable[None]]) -> AsyncIterator[BaseModel]:
    """Run ``producer`` against a fresh stream and yield everything it writes.

    Exceptions raised by the producer surface after its events are drained.
    """
    stream = EventStream()

    async def _run():
        try:
            await producer(stream)
        finally:
            stream.close()

    task = asyncio.create_task(_run())
    _detached.add(task)
    task.add_done_callback(_detached.discard)

    async for event in stream:
        yield event
    await task


async def encode_ndjson(
    events: AsyncIterator[BaseModel],
    error_event: Optional[Callable[[Exception], BaseModel]] = None,
) -> AsyncIterator[bytes]:
    try:
        async for event in events:
            yield (event.model_dump_json(exclude_none=True) + "\n").encode("utf-8")
    except Exception as e:
        logger.exception(f"Event stream aborted: {e}")
        if error_event is None:
            raise
        yield (error_event(e).model_dump_json(exclude_none=True) + "\n").encode("utf-8")


def ndjson_response(
    events: AsyncIterator[BaseModel],
    error_event: Optional[Callable[[Exception], BaseModel]] = None,
) -> StreamingResponse:
    return StreamingResponse(
        encode_ndjson(events, error_event),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
