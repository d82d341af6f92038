#!/usr/bin/env python3
"""Tests for YAML/JSON configuration loading."""

import json

import pytest
import yaml

from mcp_chat.config import DEFAULT_MAX_CHARACTERS, DEFAULT_MAX_MESSAGES, Configuration


def write_config(tmp_path, config: dict, servers: dict | None = None) -> Configuration:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(config))
    if servers is not None:
        (tmp_path / "servers_config.json").write_text(json.dumps({"mcpServers": servers}))
    return Configuration(str(config_path))


def test_bundled_config_loads(monkeypatch):
    monkeypatch.setenv("LLM_API_KEY", "test-key")
    config = Configuration()

    llm = config.get_llm_config()
    assert llm.model == "large"
    assert llm.api_key == "test-key"
    # provider extras pass through to the API payload
    assert llm.model_extra == {"temperature": 0.2}

    servers = config.get_mcp_servers()
    assert list(servers) == ["grafana", "alertmanager"]
    assert servers["grafana"].primary is True
    assert config.get_stream_config().queue_size == 100


def test_missing_sections_use_defaults(tmp_path):
    config = write_config(tmp_path, {"chat": {}})

    memory = config.get_memory_config()
    assert memory.max_messages == DEFAULT_MAX_MESSAGES
    assert memory.max_characters == DEFAULT_MAX_CHARACTERS
    assert config.get_server_config().port == 8000
    assert config.get_mcp_connection_config().rate_limit_burst == 10


def test_zero_memory_limits_mean_default(tmp_path):
    config = write_config(tmp_path, {"chat": {"memory": {"max_messages": 0, "max_characters": -1}}})

    memory = config.get_memory_config()
    assert memory.max_messages == DEFAULT_MAX_MESSAGES
    assert memory.max_characters == -1


def test_invalid_values_are_rejected(tmp_path):
    config = write_config(
        tmp_path,
        {"chat": {"streaming": {"queue_size": 0}}, "mcp": {"connection": {"max_reconnect_attempts": 0}}},
    )

    with pytest.raises(ValueError, match="queue_size"):
        config.get_stream_config()
    with pytest.raises(ValueError, match="max_reconnect_attempts"):
        config.get_mcp_connection_config()


def test_non_mapping_yaml_is_rejected(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="dictionary"):
        Configuration(str(config_path))


def test_servers_env_override_and_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("ALERTMANAGER_MCP_URL", "http://alertmanager.internal:9300")
    config = write_config(
        tmp_path,
        {},
        {
            "grafana": {"url": "http://localhost:8888", "primary": True},
            "alertmanager": {"url": "http://localhost:9300"},
            "genesys": {"url": "http://localhost:9400", "enabled": False},
        },
    )

    servers = config.get_mcp_servers()

    assert set(servers) == {"grafana", "alertmanager"}
    assert servers["alertmanager"].url == "http://alertmanager.internal:9300"


def test_two_primary_servers_rejected(tmp_path):
    config = write_config(
        tmp_path,
        {},
        {"a": {"url": "http://a", "primary": True}, "b": {"url": "http://b", "primary": True}},
    )

    with pytest.raises(ValueError, match="primary"):
        config.get_mcp_servers()


def test_provider_specific_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    config = write_config(
        tmp_path,
        {"llm": {"active": "openrouter", "providers": {"openrouter": {"base_url": "https://x", "model": "m"}}}},
    )

    assert config.get_llm_config().api_key == "or-key"

    monkeypatch.delenv("OPENROUTER_API_KEY")
    with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
        config.llm_api_key


def test_unknown_active_provider(tmp_path, monkeypatch):
    monkeypatch.setenv("LLM_API_KEY", "k")
    config = write_config(tmp_path, {"llm": {"active": "missing", "providers": {}}})

    with pytest.raises(ValueError, match="not found in providers"):
        config.get_llm_config()

