"""
Error taxonomy for the chat backend.

Every error carries JSON-RPC ErrorData so it can be reported the same way the
MCP SDK reports protocol failures:
- ProviderUnreachable: liveness check failed (fatal only when no provider is left)
- DiscoveryFailed: provider contributes zero tools
- ToolInvocationError / RateLimited: surfaced as the tool chunk's result
- StreamTransportError: ends the content stream early, turn still finalizes
- InvalidCount / InvalidOffset: rejected before any provider call
"""

from __future__ import annotations

from mcp import McpError, types

RATE_LIMITED = -32000
PROVIDER_UNREACHABLE = -32001


class ChatError(McpError):
    """Base class for all chat backend errors."""

    code: int = types.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(types.ErrorData(code=self.code, message=message))
        self.message = message

    def __str__(self) -> str:
        return self.message


class ProviderUnreachable(ChatError):
    code = PROVIDER_UNREACHABLE


class DiscoveryFailed(ChatError):
    pass


class ToolInvocationError(ChatError):
    pass


class RateLimited(ChatError):
    code = RATE_LIMITED

    def __init__(self, message: str = "rate limit exceeded") -> None:
        super().__init__(message)


class StreamTransportError(ChatError):
    pass


class InvalidCount(ChatError):
    code = types.INVALID_PARAMS


class InvalidOffset(ChatError):
    code = types.INVALID_PARAMS
