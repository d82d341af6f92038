"""Monitoring chat backend: MCP tool orchestration over a streaming LLM."""
