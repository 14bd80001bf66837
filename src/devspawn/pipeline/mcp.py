"""MCP server catalog and config file generation."""

import json
import logging
from importlib import resources
from typing import Dict, Iterable, List

from ruamel.yaml import YAML

from devspawn.errors import ConfigError
from devspawn.models.mcp import McpCatalogEntry, McpConfig


logger = logging.getLogger(__name__)

MCP_CONFIG_PATH = "~/.config/claude-code/mcp-config.json"


def load_catalog() -> Dict[str, McpCatalogEntry]:
    """Servers bundled in ``devspawn/data/mcp_servers.yaml``, in file order."""
    text = resources.files("devspawn").joinpath("data/mcp_servers.yaml").read_text()
    data = YAML(typ="safe").load(text) or {}
    return {name: McpCatalogEntry(**spec) for name, spec in data.items()}


def recommended_servers(catalog: Dict[str, McpCatalogEntry], on_proxmox: bool = False) -> List[str]:
    return [
        name for name, entry in catalog.items()
        if entry.recommended and (on_proxmox or not entry.requires_proxmox)
    ]


def build_config(names: Iterable[str], catalog: Dict[str, McpCatalogEntry]) -> McpConfig:
    """Config document for the selected servers, keeping selection order."""
    servers = {}
    for name in names:
        entry = catalog.get(name)
        if entry is None:
            raise ConfigError(f"Unknown MCP server: {name}. Known: {', '.join(catalog)}")
        servers[name] = entry.server()
        for key in entry.needs_credentials:
            logger.warning(f"{entry.title or name} requires {key}; set it in {MCP_CONFIG_PATH}")
    return McpConfig(mcpServers=servers)


def render_config(config: McpConfig) -> str:
    return json.dumps(config.model_dump(), indent=2) + "\n"
