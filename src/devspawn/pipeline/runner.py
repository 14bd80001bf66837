"""Run commands and write files inside a provisioning target."""

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import time
from typing import Callable, Iterable, Optional

from devspawn.errors import CommandFailedError, PackageInstallError
from devspawn.utils.commands import CommandResult, run_command
from devspawn.utils.progress import ProgressReporter


logger = logging.getLogger(__name__)

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class LocalTarget:
    """The host itself, exposing the same surface as a container provider."""

    ref = "localhost"

    def __init__(self, timeout: float = 1800):
        self.timeout = timeout

    def execute(self, command: str, timeout: Optional[float] = None, user: Optional[str] = None) -> CommandResult:
        if user:
            cmd = ["sudo", "-u", user, "-H", "bash", "-lc", command]
        else:
            cmd = ["bash", "-c", command]
        return run_command(cmd, check=False, timeout=timeout or self.timeout)

    def push_file(self, src: str, dest: str, mode: str = "0644", owner: Optional[str] = None):
        os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
        shutil.copyfile(src, dest)
        os.chmod(dest, int(mode, 8))
        if owner:
            shutil.chown(dest, user=owner, group=owner)


class CommandRunner:
    """Executes setup commands in a target; any non-zero exit is fatal."""

    def __init__(
        self,
        target,
        policy,
        timeout: float = 1800,
        progress: Optional[ProgressReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.target = target
        self.policy = policy
        self.timeout = timeout
        self.progress = progress or ProgressReporter()
        self._sleep = sleep

    def _execute(self, command: str, description: str, timeout: Optional[float], user: Optional[str]) -> CommandResult:
        timeout = timeout or self.timeout
        logger.debug(f"[{self.target.ref}] {description}: {command}")
        try:
            return self.target.execute(command, timeout=timeout, user=user)
        except subprocess.TimeoutExpired as e:
            raise CommandFailedError(description, None, f"timed out after {timeout}s") from e
        except OSError as e:
            raise CommandFailedError(description, None, str(e)) from e

    def run(
        self,
        command: str,
        description: str,
        timeout: Optional[float] = None,
        user: Optional[str] = None,
    ) -> CommandResult:
        with self.progress.task(description):
            result = self._execute(command, description, timeout, user)
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip().splitlines()
            logger.error(f"{description} failed (exit code: {result.returncode})")
            for line in detail[-20:]:
                logger.error(f"  {line}")
            raise CommandFailedError(description, result.returncode, detail[-1] if detail else "")
        logger.info(f"{description}: done")
        return result

    def check(self, command: str, timeout: Optional[float] = None, user: Optional[str] = None) -> bool:
        """True when ``command`` exits zero. Never raises for a failed command."""
        try:
            result = self.target.execute(command, timeout=timeout or self.timeout, user=user)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"Check '{command}' failed: {e}")
            return False
        return result.returncode == 0

    def install_package(self, package: str) -> int:
        """Install one package, retrying. Returns the attempt that succeeded."""
        attempts = self.policy.package_attempts
        command = f"{APT_ENV} apt-get install -y {shlex.quote(package)}"
        last_code = None

        for attempt in range(1, attempts + 1):
            try:
                result = self.target.execute(command, timeout=self.timeout)
                last_code = result.returncode
            except subprocess.TimeoutExpired:
                last_code = None
                logger.warning(f"Installing {package} timed out (attempt {attempt}/{attempts})")
            except OSError as e:
                last_code = None
                logger.warning(f"Installing {package} failed: {e} (attempt {attempt}/{attempts})")
            else:
                if result.returncode == 0:
                    logger.info(f"Installed {package}")
                    return attempt
                logger.warning(
                    f"Installing {package} failed with exit code {result.returncode} "
                    f"(attempt {attempt}/{attempts})"
                )
            if attempt < attempts:
                self._sleep(self.policy.package_retry_delay)

        raise PackageInstallError(package, attempts, last_code)

    def install_packages(self, packages: Iterable[str]):
        """Refresh the index once, then install strictly in order."""
        packages = list(packages)
        self.run(f"{APT_ENV} apt-get update", "Updating package lists")
        with self.progress.task(f"Installing {len(packages)} packages"):
            for package in packages:
                self.install_package(package)

    def write_file(self, content: str, dest: str, mode: str = "0644", owner: Optional[str] = None):
        """Write ``content`` to ``dest`` inside the target."""
        fd, tmp_path = tempfile.mkstemp(prefix="devspawn-")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            self.target.push_file(tmp_path, dest, mode=mode, owner=owner)
        except subprocess.CalledProcessError as e:
            detail = e.stderr.strip() if isinstance(e.stderr, str) else ""
            raise CommandFailedError(f"Writing {dest}", e.returncode, detail) from e
        except subprocess.TimeoutExpired as e:
            raise CommandFailedError(f"Writing {dest}", None, f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise CommandFailedError(f"Writing {dest}", None, str(e)) from e
        finally:
            os.unlink(tmp_path)
        logger.debug(f"Wrote {dest} ({len(content)} bytes)")
