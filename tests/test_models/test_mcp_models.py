"""Tests for MCP models."""

import pytest
from pydantic import ValidationError

from devspawn.models.mcp import McpCatalogEntry, McpConfig, McpServer


def test_catalog_entry_strips_metadata():
    entry = McpCatalogEntry(
        title="GitHub",
        description="repos",
        recommended=True,
        command="npx",
        args=["-y", "@modelcontextprotocol/server-github"],
        env={"GITHUB_PERSONAL_ACCESS_TOKEN": ""},
    )
    server = entry.server()
    assert isinstance(server, McpServer)
    assert server.model_dump() == {
        "command": "npx",
        "args": ["-y", "@modelcontextprotocol/server-github"],
        "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": ""},
    }


def test_needs_credentials_lists_empty_values():
    entry = McpCatalogEntry(command="npx", env={"TOKEN": "", "HOST": "localhost", "KEY": ""})
    assert entry.needs_credentials == ["TOKEN", "KEY"]


def test_server_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        McpServer(command="npx", transport="stdio")


def test_config_document_key():
    config = McpConfig(mcpServers={"fs": McpServer(command="npx")})
    assert list(config.model_dump()) == ["mcpServers"]
