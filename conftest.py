"""Shared fakes: in-memory tool providers and LLM endpoints behind httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from mcp_chat.chat import ChatOrchestrator
from mcp_chat.clients import LLMClient
from mcp_chat.config import LLMConfig, MCPConnectionConfig, MemoryConfig
from mcp_chat.mcp_client import MCPClient


def tool_descriptor(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": f"{name} tool",
        "inputSchema": {"type": "object", "properties": {}},
    }


def fast_connection_config(**overrides: Any) -> MCPConnectionConfig:
    values: dict[str, Any] = {
        "max_reconnect_attempts": 1,
        "initial_reconnect_delay": 0.01,
        "max_reconnect_delay": 0.01,
        "connection_timeout": 1.0,
        "ping_timeout": 1.0,
    }
    values.update(overrides)
    return MCPConnectionConfig(**values)


class FakeProvider:
    """Tool provider speaking the JSON-RPC wire contract, recording every call."""

    def __init__(
        self,
        tool_names: list[str],
        results: dict[str, dict[str, Any]] | None = None,
        list_error: dict[str, Any] | None = None,
    ):
        self.tools = [tool_descriptor(name) for name in tool_names]
        self.results = results or {}
        self.list_error = list_error
        self.healthy = True
        self.health_checks = 0
        self.list_calls = 0
        self.calls: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path == "/health":
            self.health_checks += 1
            return httpx.Response(200 if self.healthy else 503, json={"status": "ok"})

        body = json.loads(request.content)
        request_id = body["id"]

        if body["method"] == "tools/list":
            self.list_calls += 1
            if self.list_error:
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "error": self.list_error})
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "result": {"tools": self.tools}})

        self.calls.append(body["params"])
        name = body["params"]["name"]
        result = self.results.get(name, {"content": [{"type": "text", "text": f"{name} ok"}]})
        if "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "error": result["error"]})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "result": result})

    def client(self, name: str, primary: bool = False, config: MCPConnectionConfig | None = None) -> MCPClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return MCPClient(name, f"http://{name}.test", primary, config or fast_connection_config(), http_client)


class FakeLLM:
    """OpenAI-compatible endpoint replaying scripted stream deltas."""

    def __init__(self, deltas: list[dict[str, Any]] | None = None, reply: str = ""):
        self.deltas = deltas or []
        self.reply = reply
        self.healthy = True
        self.requests: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path.endswith("/models"):
            return httpx.Response(200 if self.healthy else 503, json={"data": []})

        payload = json.loads(request.content)
        self.requests.append(payload)

        if payload.get("stream"):
            events = [
                "data: " + json.dumps({"choices": [{"index": 0, "delta": delta}]}) + "\n\n" for delta in self.deltas
            ]
            events.append("data: [DONE]\n\n")
            return httpx.Response(200, text="".join(events), headers={"content-type": "text/event-stream"})

        return httpx.Response(
            200, json={"choices": [{"index": 0, "message": {"role": "assistant", "content": self.reply}}]}
        )

    def client(self) -> LLMClient:
        config = LLMConfig(base_url="http://llm.test/v1", model="test-model", api_key="test-key", temperature=0.1)
        return LLMClient(config, transport=httpx.MockTransport(self.handler))


def text_deltas(*parts: str) -> list[dict[str, Any]]:
    return [{"content": part} for part in parts]


def tool_call_deltas(name: str, *argument_fragments: str, index: int = 0, call_id: str = "call_1") -> list[dict[str, Any]]:
    deltas: list[dict[str, Any]] = [
        {"tool_calls": [{"index": index, "id": call_id, "type": "function", "function": {"name": name, "arguments": ""}}]}
    ]
    for fragment in argument_fragments:
        deltas.append({"tool_calls": [{"index": index, "function": {"arguments": fragment}}]})
    return deltas


@pytest.fixture
def make_orchestrator() -> Callable[..., ChatOrchestrator]:
    def factory(clients: list[MCPClient], llm: FakeLLM, **overrides: Any) -> ChatOrchestrator:
        service_config = ChatOrchestrator.ChatOrchestratorConfig(
            clients=clients,
            llm_client=llm.client(),
            memory_config=overrides.pop("memory_config", MemoryConfig()),
            **overrides,
        )
        return ChatOrchestrator(service_config)

    return factory
