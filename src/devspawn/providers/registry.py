"""Provider registry."""

import logging
from typing import Dict, Type

from devspawn.errors import WrongHostError
from devspawn.models.container import HostEnvironment
from devspawn.providers.base import BaseProvider
from devspawn.providers.docker import DockerProvider
from devspawn.providers.proxmox import ProxmoxProvider


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps container targets to provider classes."""

    def __init__(self):
        self._provider_classes: Dict[HostEnvironment, Type[BaseProvider]] = {
            HostEnvironment.PROXMOX_LXC: ProxmoxProvider,
            HostEnvironment.DOCKER: DockerProvider,
        }

    def register(self, environment: HostEnvironment, provider_class: Type[BaseProvider]):
        self._provider_classes[environment] = provider_class

    def create(self, environment: HostEnvironment, config, **kwargs) -> BaseProvider:
        """Instantiate the provider for ``environment``."""
        provider_class = self._provider_classes.get(environment)
        if provider_class is None:
            raise WrongHostError(f"No container provider for {environment.label}")
        logger.debug(f"Using {provider_class.__name__} for {environment.value}")
        return provider_class(config, **kwargs)
