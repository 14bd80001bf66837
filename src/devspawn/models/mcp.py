"""MCP server configuration models."""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class McpServer(BaseModel):
    """Launch parameters for one MCP server."""
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class McpCatalogEntry(McpServer):
    """Catalog entry: launch parameters plus display metadata."""
    title: str = ""
    description: str = ""
    recommended: bool = False
    requires_proxmox: bool = False

    def server(self) -> McpServer:
        return McpServer(command=self.command, args=list(self.args), env=dict(self.env))

    @property
    def needs_credentials(self) -> List[str]:
        """Environment placeholders the user still has to fill in."""
        return [key for key, value in self.env.items() if value == ""]


class McpConfig(BaseModel):
    """The JSON document written to ``mcp-config.json``."""
    mcpServers: Dict[str, McpServer] = Field(default_factory=dict)
