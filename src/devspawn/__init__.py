"""
Devspawn - Claude Code development environment provisioning.

Provisions a ready-to-use AI development environment onto the local machine,
a Proxmox VE LXC container or a Docker container.
"""

__version__ = "1.0.0"
__author__ = "Devspawn Development Team"

# Re-export key components for easier access
from devspawn.models.config import DevspawnConfig
from devspawn.models.container import ContainerSpec, HostEnvironment, ProvisioningStage
from devspawn.models.storage import StoragePool
from devspawn.models.template import TemplateArtifact

__all__ = [
    "DevspawnConfig",
    "ContainerSpec",
    "HostEnvironment",
    "ProvisioningStage",
    "StoragePool",
    "TemplateArtifact",
]
