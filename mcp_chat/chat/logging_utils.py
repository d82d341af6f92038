"""
Chat Logging Utilities

Feature-gated log helpers shared by the streaming handler and the tool
executor. Flags come from `logging.modules.<module>.enable_features` in
config.yaml and are installed by main._configure_advanced_logging.

- chat.llm_replies: one summary line per completed model reply
- chat.tool_execution: a line when each tool call starts
- mcp.tool_arguments / mcp.tool_results: payloads sent to and received from providers
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_module_features: dict[str, dict[str, bool]] = {}


def set_module_features(module: str, features: dict[str, bool]) -> None:
    """Install the feature flags of one logging module, replacing earlier ones."""
    _module_features[module] = dict(features)


def should_log_feature(module: str, feature: str) -> bool:
    """Features are off unless the module's config turns them on."""
    return bool(_module_features.get(module, {}).get(feature, False))


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


def log_llm_reply(reply: dict[str, Any], context: str, chat_conf: dict[str, Any]) -> None:
    """
    Summarize a model reply on one line.

    Args:
        reply: content, tool_calls (tool names) and model of the reply
        context: Where the reply came from, e.g. "Streaming response"
        chat_conf: Chat service config; `logging.llm_reply` sets the content clip length
    """
    if not should_log_feature("chat", "llm_replies"):
        return

    limit = chat_conf.get("logging", {}).get("llm_reply", 500)
    content = reply.get("content") or ""
    tool_names: list[str] = reply.get("tool_calls") or []

    segments = [f"LLM Reply ({context}):"]
    if content:
        segments.append(f"Content: {_clip(content, limit)}")
    if tool_names:
        segments.append(f"Tool calls: {len(tool_names)}")
        segments.extend(f"  [{position}] {name}" for position, name in enumerate(tool_names))
    segments.append(f"Model: {reply.get('model', 'unknown')}")

    logger.info(" | ".join(segments))


def log_tool_execution_start(tool_name: str, call_index: int = 0, total_calls: int = 1) -> None:
    if not should_log_feature("chat", "tool_execution"):
        return
    position = f" {call_index + 1}/{total_calls}" if total_calls > 1 else ""
    logger.info("→ MCP[%s]: running tool call%s", tool_name, position)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    logger.info("← MCP[%s]: ok, %d chars", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    logger.error("← MCP[%s]: %s", tool_name, error_msg)


def log_tool_args_error(tool_name: str, error: Exception) -> None:
    logger.error("Skipping %s, arguments are not a JSON object: %s", tool_name, error)


def log_tool_arguments(tool_name: str, arguments: dict[str, Any], context: str, truncate_length: int = 500) -> None:
    """Log the arguments a tool is about to receive (mcp.tool_arguments)."""
    if should_log_feature("mcp", "tool_arguments"):
        logger.info("→ MCP[%s]: arguments (%s): %s", tool_name, context, _clip(str(arguments), truncate_length))


def log_tool_results(tool_name: str, results: Any, context: str, truncate_length: int = 200) -> None:
    """Log what a tool returned (mcp.tool_results)."""
    if should_log_feature("mcp", "tool_results"):
        logger.info("← MCP[%s]: results (%s): %s", tool_name, context, _clip(str(results), truncate_length))
