"""Provisioning pipeline orchestration.

A run moves strictly forward through Validation, Template Download,
Container Creation and Container Setup. The first error aborts the run;
if a container had already been created it is handed to rollback, and the
original error is re-raised with the stage it happened in.
"""

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Callable, Optional

from devspawn.errors import (
    BridgeNotFoundError,
    DevspawnError,
    ProvisioningInterrupted,
)
from devspawn.host.allocator import ResourceAllocator
from devspawn.models.container import ContainerSpec, HostEnvironment, ProvisioningStage
from devspawn.models.provision import ProvisionOptions, ProvisionResult
from devspawn.pipeline.local import LocalInstaller
from devspawn.pipeline.runner import CommandRunner, LocalTarget
from devspawn.pipeline.setup import ContainerSetup
from devspawn.pipeline.validation import validate_installation
from devspawn.providers.base import BaseProvider
from devspawn.providers.registry import ProviderRegistry
from devspawn.utils.lock import HostLock
from devspawn.utils.progress import ProgressReporter


logger = logging.getLogger(__name__)


class ProvisioningPipeline:
    """Runs one provisioning of a container or of the local machine."""

    def __init__(
        self,
        config,
        options: ProvisionOptions,
        spec: Optional[ContainerSpec] = None,
        provider: Optional[BaseProvider] = None,
        allocator: Optional[ResourceAllocator] = None,
        lock: Optional[HostLock] = None,
        progress: Optional[ProgressReporter] = None,
        confirm_rollback: Optional[Callable[[str], bool]] = None,
        local_installer: Optional[LocalInstaller] = None,
        handle_signals: bool = True,
        log_file: Optional[str] = None,
    ):
        self.config = config
        self.options = options
        self.environment = options.environment
        self.spec = spec
        self.progress = progress or ProgressReporter()
        self.confirm_rollback = confirm_rollback
        self.handle_signals = handle_signals
        self.log_file = log_file
        self.stage: Optional[ProvisioningStage] = None
        self.rolled_back = False
        self._local_installer = local_installer

        self.provider = provider
        self.allocator = allocator
        self.lock = lock
        if self.environment != HostEnvironment.LOCAL:
            if self.provider is None:
                self.provider = ProviderRegistry().create(self.environment, config)
            if self.environment == HostEnvironment.PROXMOX_LXC:
                self.allocator = allocator or ResourceAllocator(config)
                self.lock = lock or HostLock(
                    config.proxmox.lock_file, timeout=config.timeouts.lock
                )

    @property
    def rollback_policy(self) -> str:
        policy = self.config.policy.rollback
        if policy == "prompt" and (self.options.auto or self.confirm_rollback is None):
            return "always"
        return policy

    def run(self) -> ProvisionResult:
        if self.environment == HostEnvironment.LOCAL:
            return self._run_local()

        if self.spec is None:
            raise ValueError("A ContainerSpec is required for container targets")

        with self._signal_guard():
            try:
                return self._run_container()
            except Exception as e:
                if isinstance(e, DevspawnError) and e.stage is None:
                    e.stage = self.stage
                stage = self.stage.value if self.stage else "startup"
                logger.error(f"Provisioning failed during {stage}: {e}")
                self.rollback()
                raise
            finally:
                self._release_lock()

    # Local

    def _run_local(self) -> ProvisionResult:
        installer = self._local_installer
        if installer is None:
            runner = CommandRunner(
                LocalTarget(timeout=self.config.timeouts.command),
                self.config.policy,
                timeout=self.config.timeouts.command,
                progress=self.progress,
            )
            installer = LocalInstaller(runner, self.config, self.options)
        result = installer.run()
        result.log_file = self.log_file
        return result

    # Containers

    def _enter(self, stage: ProvisioningStage):
        logger.info(f"=== {stage.value} ===")
        self.stage = stage
        self.progress.stage(stage)

    def _run_container(self) -> ProvisionResult:
        provider = self.provider

        self._enter(ProvisioningStage.VALIDATION)
        spec = self.validate()

        self._enter(ProvisioningStage.TEMPLATE_DOWNLOAD)
        with self.progress.task(f"Preparing {spec.os_template} template"):
            template_ref = provider.prepare_template(spec.os_template)

        self._enter(ProvisioningStage.CONTAINER_CREATION)
        with self.progress.task(f"Creating container {spec.ref}"):
            provider.create(spec, template_ref)
        self._release_lock()
        with self.progress.task("Starting container"):
            provider.start()
        with self.progress.task("Waiting for container to boot"):
            provider.wait_boot_ready()
        with self.progress.task("Waiting for network"):
            provider.wait_network_ready()
        dev_volume = False
        if spec.dev_volume_gb > 0:
            dev_volume = provider.attach_volume()
            if not dev_volume:
                self.progress.warning("Development volume could not be attached; continuing without it")
        self.progress.success(f"Container {spec.ref} is up")

        self._enter(ProvisioningStage.CONTAINER_SETUP)
        systemd = self.environment == HostEnvironment.PROXMOX_LXC
        runner = CommandRunner(
            provider,
            self.config.policy,
            timeout=self.config.timeouts.command,
            progress=self.progress,
        )
        outcome = ContainerSetup(
            runner, self.config, self.options, systemd=systemd, hostname=spec.name
        ).run()

        issues = validate_installation(runner, self.config.features, systemd=systemd)
        for issue in issues:
            self.progress.warning(issue)

        ip = provider.container_ip()
        vscode_url = None
        if self.config.features.install_vscode and ip:
            vscode_url = f"http://{ip}:{self.config.setup.vscode_port}"

        return ProvisionResult(
            environment=self.environment,
            name=spec.name,
            container_ref=spec.ref,
            ip_address=ip,
            cores=spec.cores,
            memory_mb=spec.memory_mb,
            disk_gb=spec.disk_gb,
            developer_user=self.config.setup.developer_user,
            vscode_url=vscode_url,
            vscode_password=outcome.vscode_password,
            mcp_config_path=outcome.mcp_config_path,
            project_path=outcome.project_path,
            dev_volume=dev_volume,
            validation_issues=issues,
            log_file=self.log_file,
        )

    def validate(self) -> ContainerSpec:
        """Validate the host and fill in allocated resources."""
        spec = self.spec
        if self.environment == HostEnvironment.PROXMOX_LXC:
            spec = self._validate_proxmox(spec)
        self.provider.validate(spec)
        self.spec = spec
        self.progress.success("Validation passed")
        return spec

    def _validate_proxmox(self, spec: ContainerSpec) -> ContainerSpec:
        allocator = self.allocator
        allocator.check_privileges()
        allocator.check_proxmox_version()

        self.lock.acquire()

        updates = {}
        if spec.ctid is None:
            updates["ctid"] = allocator.next_container_id(self.config.container.id_floor)
        else:
            allocator.validate_container_id(spec.ctid)

        pool = spec.storage_pool or allocator.select_storage_pool().name
        allocator.validate_storage_capacity(pool, spec.required_storage_gb)
        updates["storage_pool"] = pool

        allocator.check_memory_available(spec.memory_mb, self.config.policy.memory_check)

        bridge = spec.bridge
        if bridge is None:
            bridges = allocator.network_bridges()
            if not bridges:
                raise BridgeNotFoundError("vmbr0")
            bridge = bridges[0]
        allocator.validate_network_bridge(bridge)
        updates["bridge"] = bridge

        spec = spec.model_copy(update=updates)
        logger.info(
            f"Validated container {spec.ctid}: pool={spec.storage_pool} bridge={spec.bridge} "
            f"cores={spec.cores} memory={spec.memory_mb}MB disk={spec.disk_gb}GB"
        )
        return spec

    def _release_lock(self):
        if self.lock is not None and self.lock.held:
            self.lock.release()

    # Rollback

    def rollback(self) -> bool:
        """Destroy a partially provisioned container. Returns True if destroyed."""
        provider = self.provider
        if self.rolled_back or provider is None or not provider.create_attempted:
            return False
        self.rolled_back = True

        try:
            if not provider.exists():
                logger.info("No container to clean up")
                return False

            manual = f"devspawn destroy {provider.ref}"
            policy = self.rollback_policy
            if policy == "never":
                logger.warning(f"Leaving container {provider.ref} in place; remove it with: {manual}")
                return False
            if policy == "prompt" and not self.confirm_rollback(provider.ref):
                logger.warning(f"Container {provider.ref} kept; remove it with: {manual}")
                return False

            with self.progress.task(f"Cleaning up container {provider.ref}"):
                destroyed = provider.destroy()
        except Exception as e:
            logger.error(f"Rollback failed: {e}")
            return False

        if destroyed:
            self.progress.info(f"Container {provider.ref} removed")
        else:
            self.progress.warning(f"Could not remove container {provider.ref}")
        return destroyed

    # Signals

    @contextmanager
    def _signal_guard(self):
        if not self.handle_signals or threading.current_thread() is not threading.main_thread():
            yield
            return

        def interrupt(signum, frame):
            raise ProvisioningInterrupted(f"Interrupted by {signal.Signals(signum).name}")

        previous = {
            sig: signal.signal(sig, interrupt) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
