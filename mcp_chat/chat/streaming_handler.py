"""
Streaming Response Handler

Handles the fragile streaming operations of a turn:
- LLM response streaming
- Immediate forwarding of content deltas
- Streaming tool call accumulation
- Tool dispatch once the completion stream ends
- Delivery through a bounded chunk channel (ChunkStream)

Streaming bugs are hard to debug, so this isolation makes it easier to add
detailed logging for what's sent to the frontend.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mcp_chat.chat.logging_utils import log_llm_reply, log_tool_args_error
from mcp_chat.chat.models import PendingToolCall, StreamChunk, ToolCallDelta
from mcp_chat.config import DEFAULT_QUEUE_SIZE

if TYPE_CHECKING:
    from mcp_chat.clients import LLMClient

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, dict[str, Any]], Awaitable[str]]


class StreamingHandler:
    """Turns one completion stream into the normalized chunk sequence."""

    def __init__(self, llm_client: LLMClient, chat_conf: dict[str, Any] | None = None):
        self.llm_client = llm_client
        self.chat_conf = chat_conf or {}

    async def stream_turn(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        dispatch: Dispatch,
    ) -> AsyncGenerator[StreamChunk]:
        """
        Stream one completion pass and dispatch the tool calls it requested.

        Yields start first and done last. Transport failures become a single
        error chunk; this generator never raises them.
        """
        yield StreamChunk(type="start")

        message_parts: list[str] = []
        pending: dict[int, PendingToolCall] = {}
        finish_reason: str | None = None

        logger.info("→ LLM: starting streaming request")
        try:
            async for chunk in self.llm_client.stream_chat(messages, tools):
                choices: list[dict[str, Any]] = chunk.get("choices") or []
                if not choices:
                    continue

                choice = choices[0]
                delta: dict[str, Any] = choice.get("delta") or {}

                # Stream content immediately to user
                content = delta.get("content")
                if content:
                    message_parts.append(content)
                    logger.debug("→ Frontend: streaming content delta, length=%d", len(content))
                    yield StreamChunk(type="token", message=content)

                for tool_call_delta in delta.get("tool_calls") or []:
                    self._accumulate_tool_call_delta(pending, ToolCallDelta.model_validate(tool_call_delta))

                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]
        except Exception as e:
            logger.error("← LLM: stream failed: %s", e)
            yield StreamChunk(type="error", message=f"Stream error: {e}")

        full_content = "".join(message_parts)
        complete_calls = [pending[index] for index in sorted(pending) if pending[index].complete]
        logger.info("← LLM: streaming completed, finish_reason=%s, tool calls=%d", finish_reason, len(complete_calls))
        log_llm_reply(
            {
                "content": full_content,
                "tool_calls": [call.name for call in complete_calls],
                "model": self.llm_client.config.model,
            },
            "Streaming response",
            self.chat_conf,
        )

        for call in complete_calls:
            try:
                arguments = json.loads(call.arguments or "{}")
                if not isinstance(arguments, dict):
                    raise ValueError(f"expected a JSON object, got {type(arguments).__name__}")
            except ValueError as e:
                log_tool_args_error(call.name, e)
                yield StreamChunk(type="error", message=f"Invalid arguments for tool {call.name}: {e}")
                continue

            try:
                result = await dispatch(call.name, arguments)
            except Exception as e:
                logger.error("← MCP[%s]: dispatch failed: %s", call.name, e)
                result = f"Error: {e}"

            logger.info("→ Frontend: tool result for %s", call.name)
            yield StreamChunk(type="tool", tool=call.name, arguments=arguments, result=result)

        yield StreamChunk(type="complete", message=full_content)
        yield StreamChunk(type="done")

    def _accumulate_tool_call_delta(self, pending: dict[int, PendingToolCall], delta: ToolCallDelta) -> None:
        """
        Merge a tool call delta into the pending calls keyed by provider index.

        Each delta may carry a partial id, function name or argument fragment.
        A delta without an index starts a new call.
        """
        index = delta.index
        if index is None:
            index = max(pending) + 1 if pending else 0

        pending.setdefault(index, PendingToolCall()).merge(delta)


class ChunkStream:
    """
    Bounded channel between a turn's producer task and its consumer.

    The producer runs as its own task and blocks when the queue is full.
    aclose() cancels the producer, in-flight tool calls included.
    """

    def __init__(self, chunks: AsyncIterator[StreamChunk], queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue: asyncio.Queue[StreamChunk | None] = asyncio.Queue(maxsize=queue_size)
        self._error: Exception | None = None
        self._finished = False
        self._task: asyncio.Task[None] = asyncio.create_task(self._produce(chunks))

    async def _produce(self, chunks: AsyncIterator[StreamChunk]) -> None:
        try:
            async for chunk in chunks:
                await self._queue.put(chunk)
        except Exception as e:
            logger.error("Chunk producer failed: %s", e)
            self._error = e
        await self._queue.put(None)

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._finished:
            raise StopAsyncIteration

        chunk = await self._queue.get()
        if chunk is None:
            self._finished = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return chunk

    def cancel(self) -> None:
        """Stop the producer without waiting for it."""
        self._finished = True
        self._task.cancel()

    async def aclose(self) -> None:
        """Cancel the producer and wait until it has unwound."""
        self.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    @property
    def done(self) -> bool:
        return self._task.done()
