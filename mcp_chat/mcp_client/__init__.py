"""MCP tool provider client and argument normalization."""

from __future__ import annotations

from .client import MCPClient

__all__ = ["MCPClient"]
