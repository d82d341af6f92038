"""
HTTP Server for the monitoring chat backend

This module provides a thin communication layer between the frontend and the
chat orchestrator. It handles request validation, SSE framing and routing only.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from mcp import McpError

from mcp_chat.chat import ChatOrchestrator
from mcp_chat.chat.chat_orchestrator import new_session_id
from mcp_chat.chat.models import ChatRequest, ChatResponse
from mcp_chat.chat.streaming_handler import ChunkStream
from mcp_chat.config import ServerConfig

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class ChatServer:
    """
    HTTP communication server.

    This class only handles:
    - Request parsing and validation
    - Response streaming as Server-Sent Events
    - Session and health endpoints

    All business logic is delegated to ChatOrchestrator.
    """

    def __init__(self, orchestrator: ChatOrchestrator, server_config: ServerConfig | None = None):
        self.orchestrator = orchestrator
        self.server_config = server_config or ServerConfig()
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI app."""

        @asynccontextmanager
        async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
            # No-op when start_server already initialized
            await self.orchestrator.initialize()
            yield

        app = FastAPI(title="Monitoring Chat Server", lifespan=lifespan)

        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.exception_handler(RequestValidationError)
        async def invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
            return _error(400, f"Invalid request body: {exc.errors()}")

        @app.post("/chat")
        async def chat(request: ChatRequest):  # type: ignore
            if not request.message:
                return _error(400, "Message is required")

            session_id = request.session_id or new_session_id()
            logger.info("Chat request: session=%s, message_length=%d", session_id, len(request.message))

            try:
                response = await self.orchestrator.chat_once(session_id, request.message, request.dashboard_context)
            except McpError as e:
                logger.error("Chat failed: %s", e)
                return _error(500, f"Chat failed: {e}")

            return ChatResponse(response=response, session_id=session_id)

        @app.post("/chat-stream")
        async def chat_stream(request: ChatRequest):  # type: ignore
            if not request.message:
                return _error(400, "Message is required")

            session_id = request.session_id or new_session_id()
            logger.info("Chat stream request: session=%s, message_length=%d", session_id, len(request.message))

            try:
                stream = await self.orchestrator.process_message(
                    session_id, request.message, request.dashboard_context
                )
            except (McpError, RuntimeError) as e:
                logger.error("Stream failed to start: %s", e)
                return _error(500, f"Failed to start stream: {e}")

            return StreamingResponse(
                self._sse_events(stream),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Session-Id": session_id},
            )

        @app.post("/sessions/{session_id}/clear")
        async def clear_session(session_id: str) -> dict[str, str]:  # type: ignore
            self.orchestrator.clear_session(session_id)
            return {"status": "cleared", "session_id": session_id}

        @app.get("/sessions/{session_id}/stats")
        async def session_stats(session_id: str) -> dict[str, Any]:  # type: ignore
            return self.orchestrator.get_memory_stats(session_id).model_dump()

        @app.get("/health")
        async def health():  # type: ignore
            report = await self.orchestrator.health()
            status_code = 200 if report["status"] == "healthy" else 503
            return JSONResponse(status_code=status_code, content=report)

        return app

    async def _sse_events(self, stream: ChunkStream) -> AsyncGenerator[str]:
        """Frame chunks as SSE; a client disconnect cancels the turn."""
        try:
            async for chunk in stream:
                logger.debug("→ Frontend: %s chunk", chunk.type)
                yield chunk.to_sse()
        finally:
            stream.cancel()

    async def start_server(self) -> None:
        """Start the HTTP server with cleanup."""
        await self.orchestrator.initialize()

        host = self.server_config.host
        port = self.server_config.port
        logger.info(f"Starting chat server on {host}:{port}")

        server_config = uvicorn.Config(self.app, host=host, port=port, log_level="info")
        server = uvicorn.Server(server_config)

        try:
            await server.serve()
        finally:
            logger.info("Shutting down chat server and cleaning up resources...")
            try:
                await self.orchestrator.cleanup()
                logger.info("Chat orchestrator cleanup completed")
            except Exception as e:
                # Don't mask the original exception
                logger.error(f"Error during chat orchestrator cleanup: {e}")


async def run_chat_server(orchestrator: ChatOrchestrator, server_config: ServerConfig | None = None) -> None:
    """Run the HTTP chat server until shutdown."""
    server = ChatServer(orchestrator, server_config)
    await server.start_server()
