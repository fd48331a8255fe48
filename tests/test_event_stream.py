import asyncio
import json

import pytest

from conftest import collect
from storage_console.core.event_stream import EventStream, drive, encode_ndjson
from storage_console.modules.buckets.schemas import TeardownEvent


@pytest.mark.asyncio
async def test_events_delivered_in_emission_order():
    async def producer(stream):
        stream.write(TeardownEvent(step="files", status="running"))
        await asyncio.sleep(0)
        stream.write(TeardownEvent(step="files", status="done"))
        stream.write(TeardownEvent(step="complete", status="done"))

    events = await collect(drive(producer))

    assert [(e.step, e.status) for e in events] == [("files", "running"), ("files", "done"), ("complete", "done")]


@pytest.mark.asyncio
async def test_producer_error_surfaces_after_events():
    async def producer(stream):
        stream.write(TeardownEvent(step="files", status="running"))
        raise RuntimeError("store unavailable")

    seen = []
    with pytest.raises(RuntimeError, match="store unavailable"):
        async for event in drive(producer):
            seen.append(event)
    assert len(seen) == 1


def test_write_after_close_is_dropped():
    stream = EventStream()
    stream.close()
    stream.write(TeardownEvent(step="files", status="done"))
    assert stream.closed
    assert stream._queue.qsize() == 1  # only the end sentinel


@pytest.mark.asyncio
async def test_ndjson_encoding_omits_unset_fields():
    async def producer(stream):
        stream.write(TeardownEvent(step="cdn", status="error", error="boom"))
        stream.write(TeardownEvent(step="complete", status="done"))

    chunks = await collect(encode_ndjson(drive(producer)))

    lines = [json.loads(chunk) for chunk in chunks]
    assert lines == [{"step": "cdn", "status": "error", "error": "boom"}, {"step": "complete", "status": "done"}]
    assert all(chunk.endswith(b"\n") for chunk in chunks)


@pytest.mark.asyncio
async def test_ndjson_error_event_terminates_stream():
    async def producer(stream):
        raise ValueError("bad")

    chunks = await collect(encode_ndjson(
        drive(producer),
        error_event=lambda e: TeardownEvent(step="complete", status="error", error=str(e)),
    ))

    assert [json.loads(c) for c in chunks] == [{"step": "complete", "status": "error", "error": "bad"}]
