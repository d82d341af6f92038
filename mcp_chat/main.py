"""
Entry point: build the chat backend from configuration and serve it until a
shutdown signal arrives.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from mcp_chat.chat import ChatOrchestrator
from mcp_chat.chat.logging_utils import set_module_features
from mcp_chat.clients import LLMClient
from mcp_chat.config import Configuration
from mcp_chat.mcp_client import MCPClient
from mcp_chat.server import run_chat_server

# logging.modules.<name> -> (parent loggers, default level)
MODULE_LOGGERS: dict[str, tuple[list[str], str]] = {
    "chat": (["mcp_chat.chat", "mcp_chat.server"], "INFO"),
    "connection_pool": (["mcp_chat.clients", "httpx"], "WARNING"),
    "mcp": (["mcp", "mcp_chat.mcp_client", "mcp_chat.tool_schema_manager"], "INFO"),
}


def _to_level(name: Any, default: int = logging.WARNING) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def _configure_advanced_logging(logging_config: dict[str, Any]) -> None:
    """
    Apply the `logging` section of config.yaml.

    The root logger takes `level` (and `format` when given). Each entry under
    `modules` sets the level on its parent loggers, so child loggers inherit
    it, and installs the module's feature flags.
    """
    global_level = logging_config.get("level", "WARNING")
    root = logging.getLogger()
    root.setLevel(_to_level(global_level))

    if "format" in logging_config:
        formatter = logging.Formatter(logging_config["format"])
        for handler in root.handlers:
            handler.setFormatter(formatter)

    for module_name, module_config in logging_config.get("modules", {}).items():
        if not isinstance(module_config, dict):
            continue

        logger_names, default_level = MODULE_LOGGERS.get(module_name, ([], global_level))
        level = _to_level(module_config.get("level", default_level))
        for logger_name in logger_names:
            logging.getLogger(logger_name).setLevel(level)

        set_module_features(module_name, module_config.get("enable_features", {}))


logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def build_orchestrator(config: Configuration) -> ChatOrchestrator:
    """Create provider clients, the LLM client and the orchestrator from configuration."""
    connection_config = config.get_mcp_connection_config()

    clients = [
        MCPClient(name, provider.url, provider.primary, connection_config)
        for name, provider in config.get_mcp_servers().items()
    ]
    if not clients:
        raise ValueError("No enabled MCP servers in servers_config.json")

    service_config = ChatOrchestrator.ChatOrchestratorConfig(
        clients=clients,
        llm_client=LLMClient(config.get_llm_config()),
        chat_conf=config.get_chat_service_config(),
        mcp_logging=config.get_logging_config().get("modules", {}).get("mcp", {}),
        memory_config=config.get_memory_config(),
        stream_config=config.get_stream_config(),
    )
    return ChatOrchestrator(service_config)


async def main() -> None:
    """Serve until the server exits or SIGINT/SIGTERM is received."""
    config = Configuration()
    _configure_advanced_logging(config.get_logging_config())
    orchestrator = build_orchestrator(config)

    stop = asyncio.Event()
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)

    server_task = asyncio.create_task(run_chat_server(orchestrator, config.get_server_config()))
    stop_task = asyncio.create_task(stop.wait())

    try:
        await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop.is_set():
            logging.info("Shutdown signal received, stopping chat server")

        for task in (server_task, stop_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if not server_task.cancelled():
            # re-raises a startup or serve failure
            server_task.result()
    except Exception as e:
        logging.error(f"Chat server stopped with error: {e}")
        raise
    finally:
        logging.info("Chat backend stopped")


def cli_main() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli_main()
