"""Container ID, storage pool and bridge allocation on a Proxmox VE host."""

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from devspawn.errors import (
    BridgeNotFoundError,
    ContainerIdInUseError,
    HostValidationError,
    InsufficientMemoryError,
    InsufficientSpaceError,
    NoEligibleStoragePoolError,
    NotPrivilegedError,
    PoolNotFoundError,
    PoolNotRootfsCapableError,
    WrongHostError,
)
from devspawn.models.storage import StoragePool
from devspawn.utils.commands import run_command, command_succeeds


logger = logging.getLogger(__name__)

MIN_CONTAINER_ID = 100
MAX_CONTAINER_ID = 999999999

BRIDGE_PATTERN = re.compile(r"^vmbr\d+$")
PVE_VERSION_PATTERN = re.compile(r"pve-manager/(\d+)\.(\d+)")


def parse_pvesm_status(output: str) -> List[Dict]:
    """Parse ``pvesm status`` into dicts, keeping host order.

    Columns are Name, Type, Status, Total, Used, Available, %; capacities
    are in kilobytes.
    """
    pools = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[0] == "Name":
            continue
        try:
            total_kb = int(parts[3])
            used_kb = int(parts[4])
        except ValueError:
            logger.debug(f"Skipping unparsable pvesm line: {line!r}")
            continue
        pools.append({
            "name": parts[0],
            "type": parts[1],
            "active": parts[2] == "active",
            "total_kb": total_kb,
            "used_kb": used_kb,
        })
    return pools


def parse_storage_cfg(text: str) -> Dict[str, FrozenSet[str]]:
    """Map pool name to its ``content`` types from ``storage.cfg``."""
    content: Dict[str, FrozenSet[str]] = {}
    current = None
    for raw in text.splitlines():
        if not raw.strip() or raw.lstrip().startswith("#"):
            continue
        if not raw[0].isspace():
            # Section header "type: name"
            _, sep, name = raw.partition(":")
            current = name.strip() if sep else None
            if current:
                content.setdefault(current, frozenset())
            continue
        if current is None:
            continue
        key, _, value = raw.strip().partition(" ")
        if key == "content":
            content[current] = frozenset(
                item.strip() for item in value.split(",") if item.strip()
            )
    return content


def parse_bridges(output: str) -> List[str]:
    """Bridge names from ``ip -br link show``."""
    bridges = []
    for line in output.splitlines():
        parts = line.split()
        if not parts:
            continue
        name = parts[0].split("@", 1)[0]
        if BRIDGE_PATTERN.match(name):
            bridges.append(name)
    return bridges


def parse_free_memory(output: str) -> int:
    """Free memory in MB (total - used) from ``free -m``."""
    for line in output.splitlines():
        parts = line.split()
        if parts and parts[0] == "Mem:" and len(parts) >= 3:
            return int(parts[1]) - int(parts[2])
    raise ValueError("No 'Mem:' line in free output")


class ResourceAllocator:
    """Queries the host live; nothing is cached between calls."""

    def __init__(self, config, geteuid=os.geteuid):
        self.config = config
        self.timeout = config.timeouts.probe
        self.storage_cfg = Path(config.proxmox.storage_cfg)
        self._geteuid = geteuid

    # Host

    def check_privileges(self):
        if self._geteuid() != 0:
            raise NotPrivilegedError("This operation must be run as root")

    def check_proxmox_version(self) -> str:
        try:
            result = run_command(["pveversion"], timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            raise WrongHostError(f"This host does not look like Proxmox VE: {e}")

        match = PVE_VERSION_PATTERN.search(result.stdout)
        if not match:
            raise WrongHostError(f"Cannot parse pveversion output: {result.stdout.strip()!r}")

        major = int(match.group(1))
        version = f"{match.group(1)}.{match.group(2)}"
        if major < self.config.proxmox.min_version:
            raise WrongHostError(
                f"Proxmox VE {version} is not supported "
                f"(need {self.config.proxmox.min_version}.x or newer)"
            )
        if major < self.config.proxmox.recommended_version:
            logger.warning(
                f"Proxmox VE {version} detected; "
                f"{self.config.proxmox.recommended_version}.x or newer is recommended"
            )
        logger.info(f"Proxmox VE version: {version}")
        return version

    # Container IDs

    def id_in_use(self, ctid: int) -> bool:
        return command_succeeds(["pct", "status", str(ctid)], timeout=self.timeout) or \
            command_succeeds(["qm", "status", str(ctid)], timeout=self.timeout)

    def next_container_id(self, start_from: int = MIN_CONTAINER_ID) -> int:
        """Smallest ID >= ``start_from`` claimed by neither containers nor VMs."""
        ctid = max(start_from, MIN_CONTAINER_ID)
        while ctid <= MAX_CONTAINER_ID:
            if not self.id_in_use(ctid):
                logger.debug(f"Next free container ID: {ctid}")
                return ctid
            ctid += 1
        raise HostValidationError(f"No free container ID between {start_from} and {MAX_CONTAINER_ID}")

    def validate_container_id(self, ctid: int):
        if not MIN_CONTAINER_ID <= ctid <= MAX_CONTAINER_ID:
            raise HostValidationError(
                f"Container ID must be between {MIN_CONTAINER_ID} and {MAX_CONTAINER_ID}, got {ctid}"
            )
        if self.id_in_use(ctid):
            raise ContainerIdInUseError(ctid)

    # Storage

    def _content_types(self) -> Dict[str, FrozenSet[str]]:
        try:
            return parse_storage_cfg(self.storage_cfg.read_text())
        except OSError as e:
            raise HostValidationError(f"Cannot read {self.storage_cfg}: {e}")

    def storage_pools(self) -> List[StoragePool]:
        try:
            result = run_command(["pvesm", "status"], timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            raise HostValidationError(f"Cannot list storage pools: {e}")

        content = self._content_types()
        return [
            StoragePool(content=content.get(entry["name"], frozenset()), **entry)
            for entry in parse_pvesm_status(result.stdout)
        ]

    def eligible_storage_pools(self) -> List[StoragePool]:
        return [pool for pool in self.storage_pools() if pool.eligible]

    def select_storage_pool(self, preferred: Optional[str] = None) -> StoragePool:
        """The preferred pool if eligible, else the first eligible one."""
        eligible = self.eligible_storage_pools()
        if not eligible:
            raise NoEligibleStoragePoolError()
        if preferred:
            for pool in eligible:
                if pool.name == preferred:
                    return pool
            logger.warning(f"Storage pool '{preferred}' is not eligible, using '{eligible[0].name}'")
        return eligible[0]

    def validate_storage_capacity(self, pool_name: str, required_gb: int) -> StoragePool:
        pools = self.storage_pools()
        pool = next((p for p in pools if p.name == pool_name), None)
        if pool is None:
            raise PoolNotFoundError(pool_name, [p.name for p in pools])
        if not pool.rootfs_capable:
            raise PoolNotRootfsCapableError(pool_name, sorted(pool.content))
        if pool.available_gb < required_gb:
            raise InsufficientSpaceError(pool_name, have=pool.available_gb, need=required_gb)

        logger.info(
            f"Storage '{pool_name}': {pool.available_gb}GB available, {required_gb}GB required"
        )
        return pool

    # Memory

    def check_memory_available(self, required_mb: int, policy: str = "warn") -> Optional[int]:
        """Free host memory in MB, or None when it cannot be determined."""
        try:
            result = run_command(["free", "-m"], timeout=self.timeout)
            available = parse_free_memory(result.stdout)
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            logger.warning(f"Cannot determine host memory: {e}")
            return None

        if available < required_mb:
            if policy == "fail":
                raise InsufficientMemoryError(have=available, need=required_mb)
            logger.warning(
                f"Host memory may be insufficient: need {required_mb}MB, have {available}MB available"
            )
        return available

    # Network

    def network_bridges(self) -> List[str]:
        try:
            result = run_command(["ip", "-br", "link", "show"], timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Cannot list network interfaces: {e}")
            return []
        return parse_bridges(result.stdout)

    def validate_network_bridge(self, bridge: str):
        if not command_succeeds(["ip", "link", "show", bridge], timeout=self.timeout):
            raise BridgeNotFoundError(bridge)
