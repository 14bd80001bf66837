"""Proxmox VE LXC provider driven by ``pct``."""

import logging
import shlex
import subprocess
from typing import List, Optional

from devspawn.host.catalog import ProxmoxTemplateCatalog
from devspawn.models.container import ContainerSpec, ProvisioningStage
from devspawn.models.template import split_os_template
from devspawn.providers.base import BaseProvider
from devspawn.utils.commands import run_command


logger = logging.getLogger(__name__)

DEV_VOLUME_MOUNT = "/opt/development"


class ProxmoxProvider(BaseProvider):
    """Provider for LXC containers on a Proxmox VE host."""

    name = "proxmox"

    def __init__(self, config, catalog: Optional[ProxmoxTemplateCatalog] = None, **kwargs):
        super().__init__(config, **kwargs)
        self.catalog = catalog or ProxmoxTemplateCatalog(config)
        self.template = None

    def prepare_template(self, os_template: str) -> str:
        self.template = self.catalog.resolve(os_template)
        self.catalog.ensure_downloaded(self.template)
        return self.template.volume_ref

    def create_command(self, spec: ContainerSpec, template_ref: str) -> List[str]:
        os_name, _ = split_os_template(spec.os_template)
        cmd = [
            "pct", "create", str(spec.ctid), template_ref,
            "--hostname", spec.name,
            "--cores", str(spec.cores),
            "--memory", str(spec.memory_mb),
            "--rootfs", f"{spec.storage_pool}:{spec.disk_gb}",
            "--net0", spec.net0(),
            "--features", spec.features.to_pct(),
            "--unprivileged", "1" if spec.unprivileged else "0",
            "--ostype", os_name,
            "--onboot", "1" if self.config.features.auto_start else "0",
            "--start", "0",
        ]
        if spec.tags:
            cmd.extend(["--tags", ";".join(spec.tags)])
        return cmd

    def start_command(self) -> List[str]:
        return ["pct", "start", self.ref]

    def exec_command(self, command: str, user: Optional[str] = None) -> List[str]:
        if user:
            return ["pct", "exec", self.ref, "--", "runuser", "-l", user, "-c", command]
        return ["pct", "exec", self.ref, "--", "bash", "-c", command]

    def network_probe(self, target: str) -> str:
        return f"ping -c1 -W5 {shlex.quote(target)}"

    def exists(self) -> bool:
        if self.ref is None:
            return False
        try:
            result = run_command(["pct", "status", self.ref], check=False, timeout=self.timeouts.probe)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Cannot query container {self.ref}: {e}")
            return False
        return result.returncode == 0

    def is_running(self) -> bool:
        try:
            result = run_command(["pct", "status", self.ref], check=False, timeout=self.timeouts.probe)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return "status: running" in result.stdout

    def destroy(self) -> bool:
        if self.ref is None:
            return False
        logger.info(f"Destroying container {self.ref}")
        try:
            if self.is_running():
                run_command(["pct", "stop", self.ref], check=False, timeout=self.timeouts.stop)
            result = run_command(
                ["pct", "destroy", self.ref], check=False, timeout=self.timeouts.create
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Failed to destroy container {self.ref}: {e}")
            return False

        if result.returncode != 0:
            logger.warning(f"pct destroy {self.ref} exited {result.returncode}: {result.stderr.strip()}")
            return False
        logger.info(f"Container {self.ref} destroyed")
        return True

    def attach_volume(self) -> bool:
        spec = self.spec
        if spec is None or spec.dev_volume_gb <= 0:
            return False
        volume = f"{spec.storage_pool}:{spec.dev_volume_gb},mp={DEV_VOLUME_MOUNT}"
        try:
            run_command(
                ["pct", "set", self.ref, "-mp0", volume], timeout=self.timeouts.create
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Could not attach {spec.dev_volume_gb}GB development volume: {e}")
            return False
        logger.info(f"Attached {spec.dev_volume_gb}GB volume at {DEV_VOLUME_MOUNT}")
        return True

    def push_file(self, src: str, dest: str, mode: str = "0644", owner: Optional[str] = None):
        cmd = ["pct", "push", self.ref, src, dest, "--perms", mode]
        if owner:
            cmd.extend(["--user", owner, "--group", owner])
        run_command(cmd, timeout=self.timeouts.probe * 6)

    def container_ip(self, timeout: float = 30) -> Optional[str]:
        found = []

        def check():
            try:
                result = self.execute("hostname -I", timeout=self.timeouts.probe)
            except subprocess.TimeoutExpired:
                return False
            addresses = result.stdout.split()
            if result.returncode == 0 and addresses:
                found.append(addresses[0])
                return True
            return False

        if self._poll(check, timeout, self.policy.network_poll_interval):
            return found[0]
        logger.warning(f"No IP address reported by container {self.ref} within {timeout}s")
        return None

    def troubleshooting(self, stage: ProvisioningStage) -> List[str]:
        ctid = self.ref or "<ctid>"
        hints = {
            ProvisioningStage.VALIDATION: [
                "pveversion",
                "pvesm status",
                "ip link show",
            ],
            ProvisioningStage.TEMPLATE_DOWNLOAD: [
                "ping -c1 8.8.8.8",
                "pvesm status",
                f"pveam download {self.catalog.storage} <template>",
            ],
            ProvisioningStage.CONTAINER_CREATION: [
                f"pct status {ctid}",
                "journalctl -u pvedaemon -n 50",
                f"ls -la {self.config.proxmox.template_cache_dir}/",
            ],
            ProvisioningStage.CONTAINER_SETUP: [
                f"pct exec {ctid} -- journalctl -n 50",
                f"pct exec {ctid} -- ping -c1 google.com",
                f"pct enter {ctid}",
            ],
        }
        return hints.get(stage, [])
