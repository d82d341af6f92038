"""
LLM HTTP client for OpenAI-compatible chat completion APIs.

One httpx.AsyncClient per LLMClient, configured once from the active provider
section of config.yaml. Streaming responses are parsed from SSE `data:` lines
and yielded as raw chunk dicts; the StreamingHandler interprets them.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncGenerator
from typing import Any, cast

import httpx

from mcp_chat.config import LLMConfig
from mcp_chat.errors import StreamTransportError

PROVIDER_MARKERS = {
    "openai.com": "openai",
    "groq.com": "groq",
    "openrouter.ai": "openrouter",
    "grafana": "grafana",
}


class LLMClient:
    """OpenAI-compatible chat completions client (streaming and non-streaming)."""

    def __init__(self, config: LLMConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config: LLMConfig = config
        self.provider: str = self._detect_provider(config.base_url)

        # Create HTTP client; an explicit transport replaces the network (tests)
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout,
            http2=transport is None,
            transport=transport,
            trust_env=False,
        )

        logging.info(f"LLM client ready: provider={self.provider}, model={config.model}")

    @staticmethod
    def _detect_provider(base_url: str) -> str:
        """Provider label for logs, guessed from the base URL."""
        for marker, provider in PROVIDER_MARKERS.items():
            if marker in base_url:
                return provider
        return "unknown"

    def _build_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        """
        Build API payload by passing through all extra config parameters
        (temperature, max_tokens, ...) so new ones need no code changes.
        """
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
        }

        if stream:
            payload["stream"] = True

        for key, value in (self.config.model_extra or {}).items():
            if value is not None:
                payload[key] = value

        if tools:
            payload["tools"] = tools

        return payload

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> str:
        """
        Non-streaming completion; returns the first choice's content.

        Raises:
            StreamTransportError: On HTTP failures, malformed responses or no choices
        """
        payload = self._build_payload(messages, tools, stream=False)

        try:
            started = time.monotonic()
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            result = response.json()
            elapsed_ms = (time.monotonic() - started) * 1000
            logging.debug(f"HTTP POST /chat/completions | Status: {response.status_code} in {elapsed_ms:.0f}ms")
        except httpx.HTTPError as e:
            logging.error(f"← LLM: completion request failed: {e}")
            raise StreamTransportError(f"HTTP error: {e!s}") from e
        except ValueError as e:
            logging.error(f"← LLM: completion body is not JSON: {e}")
            raise StreamTransportError(f"Unexpected response format: {e!s}") from e

        choices = result.get("choices") if isinstance(result, dict) else None
        if not choices:
            raise StreamTransportError("No choices in API response")

        message = choices[0].get("message") or {}
        return message.get("content") or ""

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[dict[str, Any]]:
        """
        Streaming completion; yields raw chunk dicts until `[DONE]`.

        Raises:
            StreamTransportError: On HTTP failures, non-200 status or invalid JSON
        """
        payload = self._build_payload(messages, tools, stream=True)

        try:
            async with self.client.stream(
                "POST",
                "/chat/completions",
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
            ) as response:
                if response.status_code != httpx.codes.OK:
                    error_text = (await response.aread()).decode(errors="replace")
                    raise StreamTransportError(f"Streaming API error {response.status_code}: {error_text}")

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue

                    data = line[5:].strip()
                    if data == "[DONE]":
                        break
                    if not data:
                        continue

                    try:
                        chunk = cast(dict[str, Any], json.loads(data))
                    except json.JSONDecodeError as e:
                        raise StreamTransportError(f"Invalid JSON in stream chunk: {e}") from e

                    if "choices" in chunk:
                        yield chunk

        except httpx.HTTPError as e:
            logging.error(f"← LLM: stream transport failed: {e}")
            raise StreamTransportError(f"HTTP error: {e!s}") from e

    async def health(self, timeout: float = 3.0) -> None:
        """
        Check that the provider answers `GET /models`.

        Raises:
            StreamTransportError: On HTTP failures, timeouts or non-2xx status
        """
        try:
            response = await self.client.get("/models", timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StreamTransportError(f"LLM provider unavailable: {e!s}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
