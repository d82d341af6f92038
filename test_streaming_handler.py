"""
Tests for streaming turn handling: content deltas, tool call accumulation,
tool dispatch and the bounded chunk channel.
"""

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from conftest import FakeLLM, text_deltas, tool_call_deltas
from mcp_chat.chat.models import StreamChunk
from mcp_chat.chat.streaming_handler import ChunkStream, StreamingHandler
from mcp_chat.errors import StreamTransportError


class RecordingDispatch:
    def __init__(self, results: dict[str, str] | None = None, fail: bool = False):
        self.results = results or {}
        self.fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, name: str, arguments: dict[str, Any]) -> str:
        self.calls.append((name, arguments))
        if self.fail:
            raise RuntimeError("boom")
        return self.results.get(name, f"{name} result")


class BrokenStreamLLM:
    """Streams a few content deltas and then loses the connection."""

    config = SimpleNamespace(model="broken-model")

    def __init__(self, *parts: str):
        self.parts = parts

    async def stream_chat(self, messages, tools=None):
        for part in self.parts:
            yield {"choices": [{"index": 0, "delta": {"content": part}}]}
        raise StreamTransportError("HTTP error: connection reset")


async def collect(handler: StreamingHandler, dispatch: RecordingDispatch) -> list[StreamChunk]:
    messages = [{"role": "user", "content": "hi"}]
    return [chunk async for chunk in handler.stream_turn(messages, [], dispatch)]


async def test_content_only_turn():
    handler = StreamingHandler(FakeLLM(text_deltas("Hel", "lo", "!")).client())

    chunks = await collect(handler, RecordingDispatch())

    assert [c.type for c in chunks] == ["start", "token", "token", "token", "complete", "done"]
    assert [c.message for c in chunks if c.type == "token"] == ["Hel", "lo", "!"]
    assert chunks[-2].message == "Hello!"


async def test_tool_call_split_across_deltas():
    deltas = text_deltas("Checking alerts.") + tool_call_deltas("alertmanager__get_alerts", '{"cou', 'nt": 5}')
    handler = StreamingHandler(FakeLLM(deltas).client())
    dispatch = RecordingDispatch({"alertmanager__get_alerts": '{"data": []}'})

    chunks = await collect(handler, dispatch)

    assert [c.type for c in chunks] == ["start", "token", "tool", "complete", "done"]
    assert dispatch.calls == [("alertmanager__get_alerts", {"count": 5})]
    tool_chunk = chunks[2]
    assert tool_chunk.tool == "alertmanager__get_alerts"
    assert tool_chunk.arguments == {"count": 5}
    assert tool_chunk.result == '{"data": []}'


async def test_parallel_tool_calls_dispatched_in_index_order():
    deltas = tool_call_deltas("get_silences", "{}", index=1, call_id="b") + tool_call_deltas(
        "get_alerts", '{"active": true}', index=0, call_id="a"
    )
    handler = StreamingHandler(FakeLLM(deltas).client())
    dispatch = RecordingDispatch()

    await collect(handler, dispatch)

    assert dispatch.calls == [("get_alerts", {"active": True}), ("get_silences", {})]


async def test_empty_arguments_become_empty_object():
    handler = StreamingHandler(FakeLLM(tool_call_deltas("get_status")).client())
    dispatch = RecordingDispatch()

    await collect(handler, dispatch)

    assert dispatch.calls == [("get_status", {})]


async def test_malformed_arguments_skip_only_that_call():
    deltas = tool_call_deltas("get_alerts", '{"count": ', index=0) + tool_call_deltas(
        "get_status", "{}", index=1, call_id="call_2"
    )
    handler = StreamingHandler(FakeLLM(deltas).client())
    dispatch = RecordingDispatch()

    chunks = await collect(handler, dispatch)

    assert [c.type for c in chunks] == ["start", "error", "tool", "complete", "done"]
    assert chunks[1].message.startswith("Invalid arguments for tool get_alerts:")
    assert dispatch.calls == [("get_status", {})]


async def test_non_object_arguments_are_invalid():
    handler = StreamingHandler(FakeLLM(tool_call_deltas("get_alerts", "[1, 2]")).client())
    dispatch = RecordingDispatch()

    chunks = await collect(handler, dispatch)

    assert chunks[1].type == "error"
    assert dispatch.calls == []


async def test_nameless_call_is_ignored():
    deltas = [{"tool_calls": [{"index": 0, "id": "x", "function": {"arguments": "{}"}}]}]
    handler = StreamingHandler(FakeLLM(deltas).client())
    dispatch = RecordingDispatch()

    chunks = await collect(handler, dispatch)

    assert [c.type for c in chunks] == ["start", "complete", "done"]
    assert dispatch.calls == []


async def test_dispatch_exception_becomes_error_text():
    handler = StreamingHandler(FakeLLM(tool_call_deltas("get_alerts", "{}")).client())

    chunks = await collect(handler, RecordingDispatch(fail=True))

    tool_chunk = next(c for c in chunks if c.type == "tool")
    assert tool_chunk.result == "Error: boom"


async def test_transport_failure_still_finalizes_turn():
    handler = StreamingHandler(BrokenStreamLLM("Partial", " answer"))

    chunks = await collect(handler, RecordingDispatch())

    assert [c.type for c in chunks] == ["start", "token", "token", "error", "complete", "done"]
    assert chunks[3].message == "Stream error: HTTP error: connection reset"
    assert chunks[4].message == "Partial answer"


async def test_sse_framing():
    chunk = StreamChunk(type="token", message="Hi")
    assert chunk.to_sse() == 'data: {"type":"token","message":"Hi"}\n\n'
    assert StreamChunk(type="done").to_sse() == 'data: {"type":"done"}\n\n'


async def numbered_chunks(n: int):
    for i in range(n):
        yield StreamChunk(type="token", message=str(i))


async def test_chunk_stream_delivers_everything_through_small_queue():
    stream = ChunkStream(numbered_chunks(20), queue_size=1)

    received = [chunk.message async for chunk in stream]

    assert received == [str(i) for i in range(20)]
    await stream.aclose()
    assert stream.done


async def test_chunk_stream_reraises_producer_failure():
    async def failing():
        yield StreamChunk(type="start")
        raise RuntimeError("producer broke")

    stream = ChunkStream(failing())
    received = []

    with pytest.raises(RuntimeError, match="producer broke"):
        async for chunk in stream:
            received.append(chunk.type)

    assert received == ["start"]


async def test_closing_stream_cancels_inflight_tool_call():
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow_dispatch(name: str, arguments: dict[str, Any]) -> str:
        started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "never"

    handler = StreamingHandler(FakeLLM(tool_call_deltas("get_alerts", "{}")).client())
    stream = ChunkStream(handler.stream_turn([], [], slow_dispatch))

    first = await stream.__anext__()
    assert first.type == "start"

    await asyncio.wait_for(started.wait(), timeout=5)
    await stream.aclose()

    assert cancelled.is_set()
    assert stream.done
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


async def test_bare_tool_call_turn_ends_with_tool_complete_done():
    handler = StreamingHandler(FakeLLM(tool_call_deltas("get_alerts", '{"se', 'verity":"critical"}')).client())
    dispatch = RecordingDispatch()

    chunks = await collect(handler, dispatch)

    assert [c.type for c in chunks] == ["start", "tool", "complete", "done"]
    assert chunks[1].tool == "get_alerts"
    assert chunks[1].arguments == {"severity": "critical"}
    assert chunks[2].message == ""
