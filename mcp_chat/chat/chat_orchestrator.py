"""
Chat Orchestrator

Main coordination layer for a chat turn. This is a thin orchestration layer:
it owns the per-session memories, builds the message list for the model and
delegates to the streaming handler (or the plain completion call).

Sessions are created lazily and live for the lifetime of the process.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import AsyncGenerator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mcp_chat.clients import LLMClient
from mcp_chat.config import MemoryConfig, StreamConfig
from mcp_chat.errors import ProviderUnreachable
from mcp_chat.history import ConversationMemory, MemoryStats
from mcp_chat.mcp_client import MCPClient
from mcp_chat.tool_schema_manager import ToolSchemaManager

from .models import DashboardContext, StreamChunk, build_contextual_message
from .prompts import build_system_prompt
from .streaming_handler import ChunkStream, StreamingHandler
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 3.0


def new_session_id() -> str:
    """Session id for callers that did not supply one."""
    return f"session-{uuid.uuid4().hex[:16]}"


class ChatOrchestrator:
    """
    Turn coordinator - coordinates between specialized handlers
    1. Takes your message and session id
    2. Adds it to that session's memory
    3. Streams the model's answer and runs the tools it asks for
    4. Records the final answer back into memory
    """

    class ChatOrchestratorConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        clients: list[MCPClient]
        llm_client: LLMClient
        chat_conf: dict[str, Any] = Field(default_factory=dict)
        mcp_logging: dict[str, Any] = Field(default_factory=dict)
        memory_config: MemoryConfig = Field(default_factory=MemoryConfig)
        stream_config: StreamConfig = Field(default_factory=StreamConfig)
        max_concurrent_connections: int = 5

    def __init__(
        self,
        service_config: ChatOrchestratorConfig,
    ):
        self.clients = service_config.clients
        self.llm_client = service_config.llm_client
        self.chat_conf = service_config.chat_conf
        self.mcp_logging = service_config.mcp_logging
        self.memory_config = service_config.memory_config
        self.stream_config = service_config.stream_config
        self._max_concurrent_connections = service_config.max_concurrent_connections

        # Core components
        self.tool_mgr: ToolSchemaManager | None = None
        self.tool_executor: ToolExecutor | None = None
        self.streaming_handler: StreamingHandler | None = None
        self.system_prompt: str = ""
        self.tools: list[dict[str, Any]] = []

        # Session memories, created lazily on first turn
        self._sessions: dict[str, ConversationMemory] = {}
        self._sessions_lock = threading.Lock()

        # Initialization state
        self._init_lock = asyncio.Lock()
        self._ready = asyncio.Event()

    async def initialize(self) -> None:
        """
        Connect providers, build the tool catalog and the system prompt.

        Raises:
            ProviderUnreachable: If no configured provider could be connected
        """
        async with self._init_lock:
            if self._ready.is_set():
                logger.debug("Chat orchestrator already initialized")
                return

            logger.info("→ Orchestrator: connecting to MCP clients")
            connection_semaphore = asyncio.Semaphore(self._max_concurrent_connections)

            async def connect_with_semaphore(client: MCPClient) -> None:
                async with connection_semaphore:
                    await client.connect()

            connection_results = await asyncio.gather(
                *(connect_with_semaphore(c) for c in self.clients),
                return_exceptions=True,
            )

            connected_clients: list[MCPClient] = []
            for client, result in zip(self.clients, connection_results, strict=True):
                if isinstance(result, BaseException):
                    logger.warning("Client '%s' failed to connect: %s", client.name, result)
                else:
                    connected_clients.append(client)

            if not connected_clients:
                raise ProviderUnreachable("no MCP servers available")

            logger.info(
                "← Orchestrator: connected to %d out of %d MCP clients",
                len(connected_clients),
                len(self.clients),
            )

            self.tool_mgr = ToolSchemaManager(connected_clients)
            await self.tool_mgr.initialize()
            self.tools = self.tool_mgr.get_openai_tools()

            self.tool_executor = ToolExecutor(self.tool_mgr, self.mcp_logging)
            self.streaming_handler = StreamingHandler(self.llm_client, self.chat_conf)

            self.system_prompt = build_system_prompt(c.name for c in connected_clients)
            logger.info("← Orchestrator: ready - %d tools", len(self.tools))

            if self.chat_conf.get("logging", {}).get("system_prompt", False):
                logger.info("System prompt being used:\n%s", self.system_prompt)
            else:
                logger.debug("System prompt logging disabled in configuration")

            self._ready.set()

    def _get_memory(self, session_id: str) -> ConversationMemory:
        with self._sessions_lock:
            memory = self._sessions.get(session_id)
            if memory is None:
                memory = ConversationMemory(self.memory_config)
                self._sessions[session_id] = memory
            return memory

    def _build_messages(self, memory: ConversationMemory) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]
        messages.extend(message.to_openai() for message in memory.snapshot())
        return messages

    async def process_message(
        self,
        session_id: str,
        message: str,
        dashboard_context: DashboardContext | None = None,
    ) -> ChunkStream:
        """
        Start a streaming turn and return its chunk channel.

        The final answer is written to session memory before the done chunk
        reaches the consumer.
        """
        await self._ready.wait()
        if not self.streaming_handler or not self.tool_executor:
            raise RuntimeError("Chat orchestrator components not initialized")

        memory = self._get_memory(session_id)
        memory.append("user", build_contextual_message(message, dashboard_context))
        messages = self._build_messages(memory)

        logger.info("→ Orchestrator: streaming turn for session=%s", session_id)
        return ChunkStream(self._run_turn(memory, messages), self.stream_config.queue_size)

    async def _run_turn(self, memory: ConversationMemory, messages: list[dict[str, Any]]) -> AsyncGenerator[StreamChunk]:
        assert self.streaming_handler and self.tool_executor

        tokens: list[str] = []
        complete_text = ""
        async for chunk in self.streaming_handler.stream_turn(messages, self.tools, self.tool_executor.execute_tool):
            if chunk.type == "token" and chunk.message:
                tokens.append(chunk.message)
            elif chunk.type == "complete":
                complete_text = chunk.message or ""
            elif chunk.type == "done":
                answer = "".join(tokens) or complete_text
                if answer:
                    memory.append("assistant", answer)
            yield chunk

    async def chat_once(
        self,
        session_id: str,
        message: str,
        dashboard_context: DashboardContext | None = None,
    ) -> str:
        """Non-streaming turn through the same session memory."""
        await self._ready.wait()

        memory = self._get_memory(session_id)
        memory.append("user", build_contextual_message(message, dashboard_context))

        logger.info("→ LLM: non-streaming request for session=%s", session_id)
        response = await self.llm_client.chat(self._build_messages(memory), self.tools)
        logger.info("← LLM: response length=%d", len(response))

        if response:
            memory.append("assistant", response)
        return response

    def add_assistant_response(self, session_id: str, response: str) -> None:
        self._get_memory(session_id).append("assistant", response)

    def clear_session(self, session_id: str) -> None:
        with self._sessions_lock:
            memory = self._sessions.get(session_id)
        if memory is not None:
            memory.clear()
            logger.info("Cleared conversation memory for session=%s", session_id)

    def get_memory_stats(self, session_id: str) -> MemoryStats:
        with self._sessions_lock:
            memory = self._sessions.get(session_id)
        if memory is None:
            # unknown sessions report empty stats without being created
            memory = ConversationMemory(self.memory_config)
        return memory.stats()

    async def health(self) -> dict[str, Any]:
        """Probe the LLM provider and every configured tool provider."""
        healthy = True
        report: dict[str, Any] = {"status": "healthy", "mcp_servers": {}}

        try:
            await asyncio.wait_for(self.llm_client.health(HEALTH_TIMEOUT), timeout=HEALTH_TIMEOUT)
            report["llm_provider"] = {"ok": True}
        except Exception as e:
            healthy = False
            report["llm_provider"] = {"ok": False, "error": str(e) or "timeout"}

        for client in self.clients:
            try:
                await asyncio.wait_for(client.health(), timeout=HEALTH_TIMEOUT)
                report["mcp_servers"][client.name] = {"ok": True}
            except Exception as e:
                healthy = False
                report["mcp_servers"][client.name] = {"ok": False, "error": str(e) or "timeout"}

        report["status"] = "healthy" if healthy else "unhealthy"
        return report

    async def cleanup(self) -> None:
        """Close tool provider and LLM connections."""
        logger.info("→ Orchestrator: cleaning up")
        for client in self.clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning("Error closing client %s: %s", client.name, e)
        await self.llm_client.close()
        logger.info("← Orchestrator: cleanup complete")
