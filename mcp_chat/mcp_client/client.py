"""
MCP tool provider client over HTTP JSON-RPC.

One client per tool provider. Supports configurable connection timeout and
retry behavior through YAML configuration. Connection parameters include:
- max_reconnect_attempts: Maximum number of liveness probes on connect
- initial_reconnect_delay: Initial delay between probes
- max_reconnect_delay: Maximum delay (with exponential backoff)
- connection_timeout: Timeout for each connect probe
- ping_timeout: Timeout for health checks
- rate_limit_rps / rate_limit_burst: Client-side admission control
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from mcp import types
from mcp_chat.config import MCPConnectionConfig
from mcp_chat.errors import (
    DiscoveryFailed,
    ProviderUnreachable,
    RateLimited,
    ToolInvocationError,
)
from mcp_chat.mcp_client.normalization import normalize_arguments
from mcp_chat.rate_limit import RateLimiter

NAMESPACE_SEPARATOR = "__"


class MCPClient:
    """
    Tool provider client: liveness, discovery (cached once) and invocation.

    Tool names of every provider except the primary one are namespaced as
    `<name>__<raw name>` so tools from different providers never collide.
    """

    def __init__(
        self,
        name: str,
        url: str,
        primary: bool = False,
        connection_config: MCPConnectionConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize MCP client with configurable connection parameters.

        Args:
            name: Provider id, also used as the tool namespace prefix
            url: Provider base URL (JSON-RPC endpoint, /health for liveness)
            primary: Whether this is the unprefixed dashboard provider
            connection_config: Connection, retry and rate limit parameters
            http_client: Optional preconfigured HTTP client (used by tests)
        """
        self.name: str = name
        self.url: str = url.rstrip("/")
        self.primary: bool = primary
        self.config: MCPConnectionConfig = connection_config or MCPConnectionConfig()

        self._http: httpx.AsyncClient = http_client or httpx.AsyncClient(timeout=self.config.request_timeout)
        self._tools: list[types.Tool] | None = None
        self._discovery_lock: asyncio.Lock = asyncio.Lock()
        self._request_ids = itertools.count(1)
        self._is_connected: bool = False
        self.limiter = RateLimiter(self.config.rate_limit_rps, self.config.rate_limit_burst)

        logging.info(
            f"MCP client '{name}' configured with: "
            f"url={self.url}, primary={primary}, "
            f"max_attempts={self.config.max_reconnect_attempts}, "
            f"connection_timeout={self.config.connection_timeout}s, "
            f"rate_limit={self.config.rate_limit_rps}/s burst {self.config.rate_limit_burst}"
        )

    @property
    def prefix(self) -> str:
        """Namespace prefix for this provider's tools ('' for the primary provider)."""
        return "" if self.primary else f"{self.name}{NAMESPACE_SEPARATOR}"

    def exposed_name(self, raw_name: str) -> str:
        """Name the model sees for a raw provider tool name."""
        return f"{self.prefix}{raw_name}"

    def raw_name(self, name: str) -> str:
        """Strip this provider's namespace prefix if present."""
        if self.prefix and name.startswith(self.prefix):
            return name[len(self.prefix) :]
        return name

    def owns(self, name: str) -> bool:
        """Check whether a namespaced tool name belongs to this provider."""
        return bool(self.prefix) and len(name) > len(self.prefix) and name.startswith(self.prefix)

    async def connect(self) -> None:
        """
        Verify the provider is alive with exponential backoff between probes.

        Raises:
            ProviderUnreachable: If no probe succeeds within the attempt budget
        """
        delay = self.config.initial_reconnect_delay

        for attempt in range(1, self.config.max_reconnect_attempts + 1):
            try:
                await self._probe(self.config.connection_timeout)
                self._is_connected = True
                logging.info(f"MCP client '{self.name}' connected successfully")
                return
            except ProviderUnreachable as e:
                self._is_connected = False
                if attempt >= self.config.max_reconnect_attempts:
                    logging.error(f"Failed to connect to {self.name} after {attempt} attempts: {e}")
                    raise

                logging.warning(f"Connection attempt {attempt} failed for {self.name}: {e}. Retrying in {delay}s...")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.config.max_reconnect_delay)

    async def health(self) -> None:
        """Single liveness probe bounded by ping_timeout."""
        try:
            await self._probe(self.config.ping_timeout)
        except ProviderUnreachable as e:
            logging.warning(f"Health check failed for {self.name}: {e}")
            self._is_connected = False
            raise

    async def _probe(self, timeout: float) -> None:
        try:
            response = await asyncio.wait_for(self._http.get(f"{self.url}/health"), timeout=timeout)
        except TimeoutError as e:
            raise ProviderUnreachable(f"health check timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderUnreachable(f"failed to connect to MCP server: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise ProviderUnreachable(f"MCP server health check failed with status: {response.status_code}")

    async def _rpc(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one JSON-RPC request and return the decoded response body."""
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
        }
        if params is not None:
            payload["params"] = params

        response = await self._http.post(self.url, json=payload, headers={"Content-Type": "application/json"})
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    async def discover_tools(self) -> list[types.Tool]:
        """
        List tools once and cache them for the lifetime of this client.

        Concurrent first callers wait on the same lock, so only one tools/list
        request reaches the provider.

        Raises:
            DiscoveryFailed: On transport errors, provider errors or malformed responses
        """
        if self._tools is not None:
            return self._tools

        async with self._discovery_lock:
            if self._tools is not None:
                return self._tools

            try:
                body = await self._rpc("tools/list")
                if body.get("error"):
                    error = types.ErrorData.model_validate(body["error"])
                    raise DiscoveryFailed(f"tools/list failed: {error.message}")
                result = types.ListToolsResult.model_validate(body.get("result") or {})
            except DiscoveryFailed:
                raise
            except (httpx.HTTPError, ValueError, ValidationError) as e:
                logging.error(f"Error listing tools from {self.name}: {e}")
                raise DiscoveryFailed(f"failed to discover tools from {self.name}: {e}") from e

            self._tools = [tool.model_copy(update={"name": self.exposed_name(tool.name)}) for tool in result.tools]
            logging.info(f"Discovered {len(self._tools)} tools from '{self.name}'")
            return self._tools

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """
        Invoke a tool and return the first content item (text or data).

        Raises:
            RateLimited: If the client-side limiter denies the call
            ToolInvocationError: On provider errors, transport errors or empty content
        """
        if not self.limiter.allow():
            logging.warning(f"Rate limit exceeded calling '{name}' on '{self.name}'")
            raise RateLimited()

        actual_name = self.raw_name(name)
        normalized = normalize_arguments(actual_name, arguments or {}, camel_case_keys=self.primary)

        try:
            logging.info(f"Calling tool '{actual_name}' on client '{self.name}'")
            body = await self._rpc("tools/call", {"name": actual_name, "arguments": normalized})
        except (httpx.HTTPError, ValueError) as e:
            logging.error(f"Error calling tool '{actual_name}': {e}")
            raise ToolInvocationError(f"failed to invoke tool {name}: {e}") from e

        error = body.get("error")
        if error:
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            logging.error(f"MCP error calling tool '{actual_name}': {message}")
            raise ToolInvocationError(f"tool error: {message}")

        content = (body.get("result") or {}).get("content") or []
        if not content:
            raise ToolInvocationError("tool returned no content")

        first = content[0]
        logging.info(f"Tool '{actual_name}' executed successfully")
        if first.get("type") == "text":
            return first.get("text", "")
        return first.get("data")

    async def close(self) -> None:
        """Close the HTTP client."""
        self._is_connected = False
        await self._http.aclose()
        logging.info(f"MCP client '{self.name}' disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if the last liveness probe succeeded."""
        return self._is_connected
