"""
Chat Service Data Models

Data structures for the chat boundary and the streaming pipeline: inbound
requests, streamed chunks and partial tool-call deltas. All strongly typed
with Pydantic.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

# ==============================================================================
# STREAMING MODELS
# ==============================================================================

ChunkType = Literal["start", "token", "tool", "error", "complete", "done"]


class StreamChunk(BaseModel):
    """
    One unit of the outbound stream.

    Variants: start, token{message}, tool{tool, arguments, result},
    error{message}, complete{message}, done.
    """

    type: ChunkType
    message: str | None = None
    tool: str | None = None
    arguments: dict[str, Any] | None = None
    result: str | None = None

    def to_sse(self) -> str:
        """Frame the chunk as one Server-Sent Event."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int | None = None
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


class PendingToolCall(BaseModel):
    """Tool call accumulated from streaming deltas."""

    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = ""

    def merge(self, delta: ToolCallDelta) -> None:
        """Overwrite id/type/name when present, concatenate argument fragments."""
        if delta.id:
            self.id = delta.id
        if delta.type:
            self.type = delta.type
        if delta.function:
            if delta.function.name:
                self.name = delta.function.name
            if delta.function.arguments:
                self.arguments += delta.function.arguments

    @property
    def complete(self) -> bool:
        return bool(self.name)


# ==============================================================================
# REQUEST/RESPONSE MODELS
# ==============================================================================


class DashboardContext(BaseModel):
    """Dashboard the operator is looking at when asking."""

    uid: str = ""
    name: str = ""
    folder: str = ""
    tags: list[str] = Field(default_factory=list)
    time_range: dict[str, str] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    """Inbound chat request."""

    message: str = ""
    session_id: str = ""
    dashboard_context: DashboardContext | None = None


class ChatResponse(BaseModel):
    """Non-streaming chat response."""

    response: str
    session_id: str


def build_contextual_message(message: str, ctx: DashboardContext | None) -> str:
    """Prefix the user's message with a [Dashboard Context] block when there is one."""
    if ctx is None:
        return message

    parts = ["[Dashboard Context]"]
    if ctx.name:
        parts.append(f"Name: {ctx.name}")
    if ctx.uid:
        parts.append(f"UID: {ctx.uid}")
    if ctx.folder:
        parts.append(f"Folder: {ctx.folder}")
    if ctx.tags:
        parts.append(f"Tags: {', '.join(ctx.tags)}")

    start, end = ctx.time_range.get("from", ""), ctx.time_range.get("to", "")
    if start and end:
        parts.append(f"Time Range: {start} to {end}")

    if len(parts) == 1:
        return message
    return "\n".join(parts) + "\n\n" + message
