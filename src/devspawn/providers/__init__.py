"""Container providers."""

from devspawn.providers.base import BaseProvider, ContainerState
from devspawn.providers.docker import DockerProvider
from devspawn.providers.proxmox import ProxmoxProvider
from devspawn.providers.registry import ProviderRegistry

__all__ = [
    "BaseProvider",
    "ContainerState",
    "DockerProvider",
    "ProxmoxProvider",
    "ProviderRegistry",
]
