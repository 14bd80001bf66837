"""Base provider interface and the container lifecycle state machine."""

import logging
import subprocess
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Type

from devspawn.errors import (
    BootTimeoutError,
    CreateFailedError,
    CreationError,
    LifecycleError,
    NetworkTimeoutError,
    StartFailedError,
)
from devspawn.models.container import ContainerSpec, ProvisioningStage
from devspawn.utils.commands import CommandResult, run_command


logger = logging.getLogger(__name__)


class ContainerState(Enum):
    """Lifecycle state of the managed container."""
    UNCONFIGURED = "unconfigured"
    CREATED = "created"
    STARTED = "started"
    BOOT_READY = "boot_ready"
    NETWORK_READY = "network_ready"
    FAILED = "failed"


BOOT_MARKER = "test -f /bin/bash"

_ORDER = [
    ContainerState.UNCONFIGURED,
    ContainerState.CREATED,
    ContainerState.STARTED,
    ContainerState.BOOT_READY,
    ContainerState.NETWORK_READY,
]


class BaseProvider(ABC):
    """Drives one container through create, start, boot and network readiness.

    Transitions are strictly linear. Requesting one out of order raises
    :class:`LifecycleError`; any failure leaves the provider in FAILED.
    Subclasses build the runtime specific command lines.
    """

    name = "base"

    def __init__(
        self,
        config,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.timeouts = config.timeouts
        self.policy = config.policy
        self.spec: Optional[ContainerSpec] = None
        self.state = ContainerState.UNCONFIGURED
        self.create_attempted = False
        self._clock = clock
        self._sleep = sleep

    @property
    def ref(self) -> Optional[str]:
        return self.spec.ref if self.spec is not None else None

    # Command builders

    @abstractmethod
    def create_command(self, spec: ContainerSpec, template_ref: str) -> List[str]:
        """Command line creating the container (stopped)."""

    @abstractmethod
    def start_command(self) -> List[str]:
        pass

    @abstractmethod
    def exec_command(self, command: str, user: Optional[str] = None) -> List[str]:
        """Command line running ``command`` through ``bash -c`` inside the container."""

    @abstractmethod
    def network_probe(self, target: str) -> str:
        """Shell command that exits zero when ``target`` is reachable."""

    @abstractmethod
    def exists(self) -> bool:
        pass

    @abstractmethod
    def destroy(self) -> bool:
        """Best-effort stop and remove. Never raises."""

    @abstractmethod
    def push_file(self, src: str, dest: str, mode: str = "0644", owner: Optional[str] = None):
        pass

    @abstractmethod
    def container_ip(self, timeout: float = 30) -> Optional[str]:
        pass

    @abstractmethod
    def troubleshooting(self, stage: ProvisioningStage) -> List[str]:
        """Diagnostic commands worth running after a failure in ``stage``."""

    def validate(self, spec: ContainerSpec):
        """Runtime specific checks before anything is created."""

    def prepare_template(self, os_template: str) -> str:
        """Return the reference passed to :meth:`create`. Overridden where needed."""
        return os_template

    def attach_volume(self) -> bool:
        """Attach the auxiliary development volume. Failure is not fatal."""
        return False

    def adopt(self, spec: ContainerSpec):
        """Manage an existing container, e.g. for manual cleanup."""
        self.spec = spec
        self.create_attempted = True
        self.state = ContainerState.CREATED

    # State machine

    def _require(self, expected: ContainerState, action: str):
        if self.state != expected:
            raise LifecycleError(
                f"Cannot {action} container in state '{self.state.value}' "
                f"(expected '{expected.value}')"
            )

    def _advance(self, new_state: ContainerState):
        if _ORDER.index(new_state) != _ORDER.index(self.state) + 1:
            raise LifecycleError(f"Illegal transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Container {self.ref}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _fail(self):
        self.state = ContainerState.FAILED

    def _run_step(self, cmd: List[str], timeout: float, error_class: Type[CreationError], action: str) -> CommandResult:
        try:
            return run_command(cmd, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self._fail()
            raise error_class(f"{action} timed out after {timeout}s") from e
        except subprocess.CalledProcessError as e:
            self._fail()
            detail = (e.stderr or "").strip()
            raise error_class(f"{action} failed (exit code: {e.returncode}) {detail}".rstrip()) from e
        except OSError as e:
            self._fail()
            raise error_class(f"{action} failed: {e}") from e

    def create(self, spec: ContainerSpec, template_ref: str):
        self._require(ContainerState.UNCONFIGURED, "create")
        self.spec = spec
        self.create_attempted = True
        logger.info(f"Creating container {spec.ref} from {template_ref}")
        self._run_step(
            self.create_command(spec, template_ref),
            self.timeouts.create,
            CreateFailedError,
            f"Creating container {spec.ref}",
        )
        self._advance(ContainerState.CREATED)

    def start(self):
        self._require(ContainerState.CREATED, "start")
        logger.info(f"Starting container {self.ref}")
        self._run_step(
            self.start_command(),
            self.timeouts.start,
            StartFailedError,
            f"Starting container {self.ref}",
        )
        self._advance(ContainerState.STARTED)

    def _probe(self, command: str) -> bool:
        try:
            result = run_command(
                self.exec_command(command), check=False, timeout=self.timeouts.probe
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Probe '{command}' failed: {e}")
            return False
        return result.returncode == 0

    def _poll(self, check: Callable[[], bool], timeout: float, interval: float) -> bool:
        deadline = self._clock() + timeout
        while True:
            if check():
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(interval)

    def wait_boot_ready(self, timeout: Optional[float] = None):
        self._require(ContainerState.STARTED, "wait for boot of")
        timeout = self.timeouts.boot if timeout is None else timeout
        logger.info(f"Waiting up to {timeout}s for container {self.ref} to boot")
        if not self._poll(lambda: self._probe(BOOT_MARKER), timeout, self.policy.boot_poll_interval):
            self._fail()
            raise BootTimeoutError(f"Container {self.ref} did not become ready within {timeout}s")
        self._advance(ContainerState.BOOT_READY)

    def network_targets(self) -> List[str]:
        return list(self.config.proxmox.network_targets)

    def network_reachable(self) -> bool:
        """One round of probes, judged by the readiness policy."""
        results = []
        for target in self.network_targets():
            ok = self._probe(self.network_probe(target))
            logger.debug(f"Network probe {target}: {'ok' if ok else 'failed'}")
            if ok and self.policy.network_readiness == "any":
                return True
            if not ok and self.policy.network_readiness == "all":
                return False
            results.append(ok)
        return bool(results) and all(results)

    def wait_network_ready(self, timeout: Optional[float] = None):
        self._require(ContainerState.BOOT_READY, "wait for network of")
        timeout = self.timeouts.network if timeout is None else timeout
        logger.info(
            f"Waiting up to {timeout}s for network in container {self.ref} "
            f"({self.policy.network_readiness} of {', '.join(self.network_targets())})"
        )
        if not self._poll(self.network_reachable, timeout, self.policy.network_poll_interval):
            self._fail()
            raise NetworkTimeoutError(
                f"Container {self.ref} has no outbound network after {timeout}s"
            )
        self._advance(ContainerState.NETWORK_READY)

    # Commands inside the container

    def execute(self, command: str, timeout: Optional[float] = None, user: Optional[str] = None) -> CommandResult:
        """Run a shell command inside the container without checking its exit code."""
        if self.state not in (
            ContainerState.STARTED, ContainerState.BOOT_READY, ContainerState.NETWORK_READY
        ):
            raise LifecycleError(f"Cannot execute in container in state '{self.state.value}'")
        return run_command(
            self.exec_command(command, user=user),
            check=False,
            timeout=timeout or self.timeouts.command,
        )
