"""Configuration management for the monitoring chat backend."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Defaults used when a section or key is missing from config.yaml
DEFAULT_MAX_MESSAGES = 100
DEFAULT_MAX_CHARACTERS = 100_000
DEFAULT_QUEUE_SIZE = 100


class MemoryConfig(BaseModel):
    """Per-session conversation memory limits (0 = default, <0 = unlimited)."""

    max_messages: int = DEFAULT_MAX_MESSAGES
    max_characters: int = DEFAULT_MAX_CHARACTERS


class MCPConnectionConfig(BaseModel):
    """Connection, retry and admission settings shared by all tool providers."""

    max_reconnect_attempts: int = 3
    initial_reconnect_delay: float = 1.0
    max_reconnect_delay: float = 5.0
    connection_timeout: float = 10.0
    ping_timeout: float = 3.0
    request_timeout: float = 30.0
    rate_limit_rps: float = 5.0
    rate_limit_burst: int = 10


class ProviderConfig(BaseModel):
    """A single tool provider entry from servers_config.json."""

    url: str
    enabled: bool = True
    primary: bool = False


class StreamConfig(BaseModel):
    """Streaming delivery settings."""

    queue_size: int = DEFAULT_QUEUE_SIZE


class ServerConfig(BaseModel):
    """HTTP resource server settings."""

    host: str = "localhost"
    port: int = 8000


class LLMConfig(BaseModel):
    """Active LLM provider settings; extra keys are passed through to the API."""

    model_config = ConfigDict(extra="allow")

    base_url: str
    model: str
    api_key: str = Field(default="", repr=False)
    timeout: float = 60.0


class Configuration:
    """Loads config.yaml, .env and servers_config.json into typed sections."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()
        self._config_path = config_path or os.path.join(os.path.dirname(__file__), "config.yaml")
        self._config: dict[str, Any] = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    @staticmethod
    def load_config(file_path: str) -> dict[str, Any]:
        """Load server configuration from JSON file.

        Args:
            file_path: Path to the JSON configuration file.

        Returns:
            Dict containing server configuration.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            JSONDecodeError: If configuration file is invalid JSON.
        """
        with open(file_path) as f:
            return json.load(f)

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        LLM_API_KEY takes precedence over the provider-specific variable.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        generic_key = os.getenv("LLM_API_KEY")
        if generic_key:
            return generic_key

        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "grafana")

        provider_key_map = {
            "grafana": "GRAFANA_API_KEY",
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(f"Unknown provider '{active_provider}' - no API key mapping found")

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables for provider '{active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> LLMConfig:
        """Get active LLM provider configuration, API key included."""
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "grafana")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(f"Active provider '{active_provider}' not found in providers config")

        return LLMConfig(**providers[active_provider], api_key=self.llm_api_key)

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})

    def get_chat_service_config(self) -> dict[str, Any]:
        """Get chat service configuration from YAML."""
        return self._config.get("chat", {}).get("service", {})

    def get_memory_config(self) -> MemoryConfig:
        """Get per-session memory limits."""
        memory_config = MemoryConfig(**self._config.get("chat", {}).get("memory", {}))
        if memory_config.max_messages == 0:
            memory_config.max_messages = DEFAULT_MAX_MESSAGES
        if memory_config.max_characters == 0:
            memory_config.max_characters = DEFAULT_MAX_CHARACTERS
        return memory_config

    def get_stream_config(self) -> StreamConfig:
        """Get streaming delivery configuration."""
        stream_config = StreamConfig(**self._config.get("chat", {}).get("streaming", {}))
        if stream_config.queue_size < 1:
            raise ValueError("queue_size must be a positive integer")
        return stream_config

    def get_server_config(self) -> ServerConfig:
        """Get HTTP server configuration."""
        return ServerConfig(**self._config.get("chat", {}).get("server", {}))

    def get_mcp_connection_config(self) -> MCPConnectionConfig:
        """Get MCP connection configuration with validated defaults."""
        mcp_config = self._config.get("mcp", {})
        connection_config = MCPConnectionConfig(**mcp_config.get("connection", {}))

        if connection_config.max_reconnect_attempts < 1:
            raise ValueError("max_reconnect_attempts must be at least 1")
        if connection_config.initial_reconnect_delay <= 0:
            raise ValueError("initial_reconnect_delay must be positive")
        if connection_config.max_reconnect_delay < connection_config.initial_reconnect_delay:
            raise ValueError("max_reconnect_delay must be >= initial_reconnect_delay")
        if connection_config.connection_timeout <= 0:
            raise ValueError("connection_timeout must be positive")
        if connection_config.ping_timeout <= 0:
            raise ValueError("ping_timeout must be positive")

        return connection_config

    def get_mcp_servers(self, servers_path: str | None = None) -> dict[str, ProviderConfig]:
        """
        Get enabled tool providers keyed by provider id.

        A provider's URL may be overridden by an environment variable named
        <PROVIDER_ID>_MCP_URL (e.g. ALERTMANAGER_MCP_URL).
        """
        if servers_path is None:
            servers_file = self._config.get("mcp", {}).get("servers_config", "servers_config.json")
            servers_path = os.path.join(os.path.dirname(self._config_path), servers_file)

        servers_config = self.load_config(servers_path)

        servers: dict[str, ProviderConfig] = {}
        for name, server_config in servers_config.get("mcpServers", {}).items():
            provider = ProviderConfig(**server_config)
            env_url = os.getenv(f"{name.upper()}_MCP_URL")
            if env_url:
                provider.url = env_url
            if not provider.enabled:
                logging.info(f"Skipping disabled server: {name}")
                continue
            servers[name] = provider

        if sum(1 for p in servers.values() if p.primary) > 1:
            raise ValueError("At most one MCP server may be marked primary")

        return servers
