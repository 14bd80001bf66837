"""Pydantic models for configuration and validation."""

from devspawn.models.config import (
    DevspawnConfig,
    ContainerDefaults,
    FeatureConfig,
    TimeoutConfig,
    PolicyConfig,
    ProxmoxConfig,
    DockerConfig,
    SetupConfig,
    LoggingConfig,
)
from devspawn.models.container import ContainerSpec, FeatureFlags, HostEnvironment, ProvisioningStage
from devspawn.models.mcp import McpServer, McpCatalogEntry, McpConfig
from devspawn.models.provision import ProvisionOptions, ProvisionResult
from devspawn.models.storage import StoragePool
from devspawn.models.template import TemplateArtifact

__all__ = [
    "DevspawnConfig",
    "ContainerDefaults",
    "FeatureConfig",
    "TimeoutConfig",
    "PolicyConfig",
    "ProxmoxConfig",
    "DockerConfig",
    "SetupConfig",
    "LoggingConfig",
    "ContainerSpec",
    "FeatureFlags",
    "HostEnvironment",
    "ProvisioningStage",
    "McpServer",
    "McpCatalogEntry",
    "McpConfig",
    "ProvisionOptions",
    "ProvisionResult",
    "StoragePool",
    "TemplateArtifact",
]
