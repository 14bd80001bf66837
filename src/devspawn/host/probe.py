"""Detection of the provisioning targets this host supports."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, Optional

from devspawn.errors import WrongHostError
from devspawn.models.container import HostEnvironment
from devspawn.utils.commands import run_command, command_succeeds


logger = logging.getLogger(__name__)

PROXMOX_MARKER_FILES = ("/etc/pve/version", "/etc/proxmox-release")
PROXMOX_BINARIES = ("pvesh", "pveversion", "pct")


class EnvironmentProber:
    """Read-only checks for Proxmox VE and Docker.

    Absence is a normal result. Errors raised by the probes themselves are
    logged and treated as "not found".
    """

    def __init__(self, timeout: float = 10, root: str = "/"):
        self.timeout = timeout
        self.root = Path(root)

    def _marker(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def probe(self) -> FrozenSet[HostEnvironment]:
        found = {HostEnvironment.LOCAL}
        if self.has_proxmox():
            found.add(HostEnvironment.PROXMOX_LXC)
        if self.has_docker():
            found.add(HostEnvironment.DOCKER)
        logger.info(f"Detected environments: {', '.join(sorted(e.value for e in found))}")
        return frozenset(found)

    def has_proxmox(self) -> bool:
        for marker in PROXMOX_MARKER_FILES:
            try:
                if self._marker(marker).exists():
                    logger.debug(f"Proxmox marker file present: {marker}")
                    return True
            except OSError as e:
                logger.debug(f"Cannot stat {marker}: {e}")

        for binary in PROXMOX_BINARIES:
            if shutil.which(binary):
                logger.debug(f"Proxmox binary on PATH: {binary}")
                return True

        if shutil.which("systemctl") and command_succeeds(
            ["systemctl", "is-active", "--quiet", "pve-cluster"], timeout=self.timeout
        ):
            logger.debug("pve-cluster service is active")
            return True

        return False

    def has_docker(self) -> bool:
        if not shutil.which("docker"):
            return False
        if command_succeeds(["docker", "info"], timeout=self.timeout):
            return True
        logger.debug("docker binary present but daemon not reachable")
        return False

    def proxmox_version(self) -> Optional[str]:
        """``pve-manager/8.1.4/...`` line reported by pveversion, if any."""
        return self._version_line(["pveversion"])

    def docker_version(self) -> Optional[str]:
        return self._version_line(["docker", "--version"])

    def _version_line(self, cmd) -> Optional[str]:
        try:
            result = run_command(cmd, check=False, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip().splitlines()[0] if result.stdout.strip() else None


def choose_environment(
    available: Iterable[HostEnvironment],
    requested: Optional[HostEnvironment] = None,
    chooser: Optional[Callable[[FrozenSet[HostEnvironment]], HostEnvironment]] = None,
) -> HostEnvironment:
    """Pick the target: explicit request, else ``chooser``, else LOCAL."""
    available = frozenset(available)

    if requested is not None:
        if requested not in available:
            raise WrongHostError(f"{requested.label} is not available on this host")
        return requested

    if chooser is not None and len(available) > 1:
        chosen = chooser(available)
        if chosen not in available:
            raise WrongHostError(f"{chosen.label} is not available on this host")
        return chosen

    return HostEnvironment.LOCAL
