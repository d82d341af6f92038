"""Tool Schema Manager for the monitoring chat backend

Union catalog over every connected tool provider:
- Collects each MCPClient's (already namespaced) tools into one registry
- Hands the model OpenAI `function` tool definitions built from inputSchema
- Routes a tool call to the provider whose `<id>__` prefix matches, else to
  the primary (Grafana) provider

Provider schemas are passed through untouched and arguments are validated by
the provider. A provider whose discovery fails contributes no tools.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from mcp import types
from mcp_chat.errors import DiscoveryFailed, ToolInvocationError

if TYPE_CHECKING:
    from mcp_chat.mcp_client import MCPClient

logger = logging.getLogger(__name__)


class ToolSchemaManager:
    """
    Union tool catalog across providers and prefix-based dispatch.

    Key characteristics:
    - Names are already namespaced by each client (`<provider>__<tool>`), the
      primary provider's names are bare
    - Dispatch: the first non-primary provider whose prefix matches wins,
      otherwise the primary provider handles the call
    """

    def __init__(self, clients: list[MCPClient]) -> None:
        """Registry over the given clients; call initialize() before use."""
        self.clients = clients
        self._tool_registry: dict[str, ToolInfo] = {}

    async def initialize(self) -> None:
        """Build the registry; providers whose discovery fails are skipped."""
        self._tool_registry.clear()

        for client in self.clients:
            try:
                tools = await client.discover_tools()
            except DiscoveryFailed as e:
                logger.warning(f"Skipping tools from client '{client.name}': {e}")
                continue

            for tool in tools:
                if tool.name in self._tool_registry:
                    logger.warning(f"Tool name conflict: '{tool.name}' already exists")
                    continue
                self._tool_registry[tool.name] = ToolInfo(tool, client)

            logger.info(f"Registered {len(tools)} tools from client '{client.name}'")

        logger.info(f"Initialized registry with {len(self._tool_registry)} tools")

    @property
    def primary_client(self) -> MCPClient | None:
        """The unprefixed dashboard provider, if one is configured."""
        return next((client for client in self.clients if client.primary), None)

    def resolve_client(self, tool_name: str) -> MCPClient:
        """
        Find the provider that owns a tool name.

        Raises:
            ToolInvocationError: If no prefix matches and there is no primary provider
        """
        for client in self.clients:
            if client.owns(tool_name):
                return client

        primary = self.primary_client
        if primary is None:
            raise ToolInvocationError(f"no MCP client found for tool: {tool_name}")
        return primary

    def _to_openai_tool(self, tool: types.Tool) -> dict[str, Any]:
        """
        Produce a minimal OpenAI tool wrapper for an MCP tool.

        Relies on MCP's inputSchema (JSON Schema) as-is.
        """
        if not tool.inputSchema:
            raise ValueError(f"Tool {tool.name} has no input schema")

        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.inputSchema,
            },
        }

    def get_openai_tools(self) -> list[dict[str, Any]]:
        """OpenAI tool definitions for every registered tool, in registration order."""
        tools: list[dict[str, Any]] = []
        for name, info in self._tool_registry.items():
            try:
                tools.append(self._to_openai_tool(info.tool))
            except ValueError as e:
                logger.error(f"Skipping tool '{name}' due to schema error: {e}")
        return tools

    def list_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tool_registry.keys())

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """
        Call a tool with raw arguments on its owning provider.

        No client-side validation is performed. We rely on the provider for
        schema validation and error semantics.
        """
        client = self.resolve_client(tool_name)
        return await client.invoke(tool_name, arguments)


class ToolInfo:
    """A registered tool and the client that serves it."""

    def __init__(self, tool: types.Tool, client: MCPClient):
        self.tool = tool
        self.client = client
