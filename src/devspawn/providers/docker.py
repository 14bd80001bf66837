"""Docker provider driven by the ``docker`` CLI."""

import logging
import shlex
import subprocess
from typing import List, Optional

from devspawn.errors import ContainerIdInUseError, DownloadFailedError, TemplateNotFoundError
from devspawn.models.container import ContainerSpec, ProvisioningStage
from devspawn.providers.base import BaseProvider
from devspawn.utils.commands import run_command, command_succeeds


logger = logging.getLogger(__name__)

DEV_VOLUME_MOUNT = "/opt/development"
IP_FORMAT = "{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}"


class DockerProvider(BaseProvider):
    """Provider for a long-running Docker container used as a dev box."""

    name = "docker"

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        self.docker_config = config.docker
        self.image: Optional[str] = None

    def validate(self, spec: ContainerSpec):
        if command_succeeds(["docker", "container", "inspect", spec.name], timeout=self.timeouts.probe):
            raise ContainerIdInUseError(spec.name)

    def prepare_template(self, os_template: str) -> str:
        image = self.docker_config.images.get(os_template)
        if image is None:
            raise TemplateNotFoundError(os_template)
        self.image = image

        if command_succeeds(["docker", "image", "inspect", image], timeout=self.timeouts.probe):
            logger.info(f"Image {image} already present")
            return image

        logger.info(f"Pulling image {image}")
        try:
            run_command(["docker", "pull", image], timeout=self.timeouts.template_download)
        except subprocess.TimeoutExpired as e:
            raise DownloadFailedError(f"Pulling {image} timed out after {e.timeout}s") from e
        except (OSError, subprocess.CalledProcessError) as e:
            raise DownloadFailedError(f"Pulling {image} failed: {e}") from e
        return image

    def volume_name(self, spec: ContainerSpec) -> str:
        return f"{self.docker_config.volume_prefix}-{spec.name}-dev"

    def create_command(self, spec: ContainerSpec, template_ref: str) -> List[str]:
        cmd = [
            "docker", "create",
            "--name", spec.name,
            "--hostname", spec.name,
            "--cpus", str(spec.cores),
            "--memory", f"{spec.memory_mb}m",
            "--network", self.docker_config.network,
            "--label", "devspawn.managed=true",
        ]
        if spec.features.nesting and not spec.unprivileged:
            cmd.append("--privileged")
        if spec.dev_volume_gb > 0:
            cmd.extend(["-v", f"{self.volume_name(spec)}:{DEV_VOLUME_MOUNT}"])
        cmd.extend([template_ref, "tail", "-f", "/dev/null"])
        return cmd

    def start_command(self) -> List[str]:
        return ["docker", "start", self.ref]

    def exec_command(self, command: str, user: Optional[str] = None) -> List[str]:
        cmd = ["docker", "exec"]
        if user:
            cmd.extend(["-u", user, "-w", f"/home/{user}"])
            return cmd + [self.ref, "bash", "-lc", command]
        return cmd + [self.ref, "bash", "-c", command]

    def network_targets(self) -> List[str]:
        return list(self.docker_config.network_targets)

    def network_probe(self, target: str) -> str:
        host, _, port = target.rpartition(":")
        connect = f"exec 3<>/dev/tcp/{host}/{port}"
        return f"timeout 5 bash -c {shlex.quote(connect)}"

    def exists(self) -> bool:
        if self.ref is None:
            return False
        return command_succeeds(["docker", "container", "inspect", self.ref], timeout=self.timeouts.probe)

    def destroy(self) -> bool:
        if self.ref is None:
            return False
        logger.info(f"Removing container {self.ref}")
        try:
            result = run_command(
                ["docker", "rm", "-f", self.ref], check=False, timeout=self.timeouts.stop
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Failed to remove container {self.ref}: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"docker rm {self.ref} exited {result.returncode}: {result.stderr.strip()}")
            return False
        if self.spec is not None and self.spec.dev_volume_gb > 0:
            self._remove_volume(self.volume_name(self.spec))
        return True

    def _remove_volume(self, volume: str):
        try:
            result = run_command(
                ["docker", "volume", "rm", volume], check=False, timeout=self.timeouts.stop
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Failed to remove volume {volume}: {e}")
            return
        if result.returncode != 0:
            logger.warning(f"docker volume rm {volume} exited {result.returncode}: {result.stderr.strip()}")
        else:
            logger.info(f"Removed volume {volume}")

    def attach_volume(self) -> bool:
        # Docker volumes can only be mounted at creation time
        if self.spec is None or self.spec.dev_volume_gb <= 0:
            return False
        logger.info(f"Development volume {self.volume_name(self.spec)} mounted at {DEV_VOLUME_MOUNT}")
        return True

    def push_file(self, src: str, dest: str, mode: str = "0644", owner: Optional[str] = None):
        run_command(["docker", "cp", src, f"{self.ref}:{dest}"], timeout=self.timeouts.probe * 6)
        fixup = f"chmod {shlex.quote(mode)} {shlex.quote(dest)}"
        if owner:
            fixup += f" && chown {shlex.quote(owner)}:{shlex.quote(owner)} {shlex.quote(dest)}"
        run_command(self.exec_command(fixup), timeout=self.timeouts.probe)

    def container_ip(self, timeout: float = 30) -> Optional[str]:
        try:
            result = run_command(
                ["docker", "inspect", "-f", IP_FORMAT, self.ref], timeout=timeout
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Cannot read IP address of {self.ref}: {e}")
            return None
        return result.stdout.strip() or None

    def troubleshooting(self, stage: ProvisioningStage) -> List[str]:
        name = self.ref or "<container>"
        hints = {
            ProvisioningStage.VALIDATION: ["docker info"],
            ProvisioningStage.TEMPLATE_DOWNLOAD: [
                f"docker pull {self.image or '<image>'}",
                "docker images",
            ],
            ProvisioningStage.CONTAINER_CREATION: [
                f"docker ps -a --filter name={name}",
                f"docker logs {name}",
            ],
            ProvisioningStage.CONTAINER_SETUP: [
                f"docker exec -it {name} bash",
                f"docker logs {name}",
            ],
        }
        return hints.get(stage, [])
