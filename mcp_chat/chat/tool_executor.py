"""
Tool Execution Handler

Handles the tool-facing side of a turn:
- Routing a tool call to its provider
- Tool result formatting
- Logging of MCP provider interactions

Failures are turned into readable "Error: ..." text so a single bad tool call
never breaks the turn.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from mcp import McpError
from mcp_chat.chat.logging_utils import (
    log_tool_arguments,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
    log_tool_results,
)

if TYPE_CHECKING:
    from mcp_chat.tool_schema_manager import ToolSchemaManager

logger = logging.getLogger("mcp_chat.mcp_client")


def format_tool_result(result: Any) -> str:
    """
    Convert a provider result into text for the model and the UI.

    Strings pass through, dicts and lists become indented JSON, None becomes
    a placeholder and anything else is stringified.
    """
    if result is None:
        return "No result returned"
    if isinstance(result, str):
        return result
    if isinstance(result, dict | list):
        try:
            return json.dumps(result, indent=2)
        except (TypeError, ValueError):
            return str(result)
    return str(result)


class ToolExecutor:
    """Executes tool calls through the tool registry."""

    def __init__(self, tool_mgr: ToolSchemaManager, mcp_logging: dict[str, Any] | None = None):
        self.tool_mgr = tool_mgr
        self.mcp_logging = mcp_logging or {}

    async def execute_tool(self, tool_name: str, arguments: dict[str, Any], call_index: int = 0, total_calls: int = 1) -> str:
        """
        Execute one tool call and return its formatted result.

        Provider errors (unknown tool, rate limit, invocation failure) come back
        as "Error: <message>" rather than raising.
        """
        log_tool_arguments(
            tool_name,
            arguments,
            f"call {call_index + 1}/{total_calls}",
            self.mcp_logging.get("tool_arguments_truncate", 500),
        )
        log_tool_execution_start(tool_name, call_index, total_calls)

        try:
            result = await self.tool_mgr.call_tool(tool_name, arguments)
        except McpError as e:
            log_tool_execution_error(tool_name, str(e))
            return f"Error: {e}"

        content = format_tool_result(result)
        log_tool_execution_success(tool_name, len(content))
        log_tool_results(
            tool_name,
            content,
            f"call {call_index + 1}/{total_calls}",
            self.mcp_logging.get("tool_results_truncate", 200),
        )
        return content
