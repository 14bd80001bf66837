"""Proxmox template catalog: resolving and downloading OS templates."""

import logging
import re
import subprocess
import time
from pathlib import Path
from typing import Callable, List

from devspawn.errors import (
    CatalogUnreachableError,
    DownloadFailedError,
    TemplateNotFoundError,
)
from devspawn.models.template import TemplateArtifact, split_os_template
from devspawn.utils.commands import run_command
from devspawn.utils.retry import retry_call


logger = logging.getLogger(__name__)


def natural_key(text: str):
    """Sort key that orders embedded numbers numerically (like ``sort -V``)."""
    return [
        (0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk)
        for chunk in re.split(r"(\d+)", text)
        if chunk
    ]


def parse_available(output: str) -> List[str]:
    """Template file names from ``pveam available``."""
    names = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            names.append(parts[1])
    return names


def pick_template(names: List[str], os_name: str, version: str) -> str:
    """Version-greatest ``<os>-<version>*standard`` entry, independent of listing order."""
    pattern = re.compile(rf"^{re.escape(os_name)}-{re.escape(version)}.*standard")
    matches = [name for name in names if pattern.search(name)]
    if not matches:
        raise TemplateNotFoundError(f"{os_name}-{version}")
    return max(matches, key=natural_key)


class ProxmoxTemplateCatalog:
    """Resolves OS names against ``pveam`` and keeps the local cache filled."""

    def __init__(self, config, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.storage = config.proxmox.template_storage
        self.cache_dir = Path(config.proxmox.template_cache_dir)
        self._sleep = sleep

    def refresh(self) -> bool:
        """Update the catalog index; failure falls back to the cached index."""
        try:
            run_command(["pveam", "update"], timeout=self.config.timeouts.catalog_update)
            return True
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Template catalog update failed, using cached index: {e}")
            return False

    def available(self) -> List[str]:
        try:
            result = run_command(
                ["pveam", "available", "--section", "system"],
                timeout=self.config.timeouts.catalog_update,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise CatalogUnreachableError(f"Cannot list template catalog: {e}")
        return parse_available(result.stdout)

    def resolve(self, os_template: str) -> TemplateArtifact:
        try:
            os_name, version = split_os_template(os_template)
        except ValueError as e:
            raise TemplateNotFoundError(os_template) from e

        self.refresh()
        filename = pick_template(self.available(), os_name, version)
        logger.info(f"Resolved {os_template} to {filename}")
        return TemplateArtifact(
            os=os_name,
            version=version,
            filename=filename,
            storage=self.storage,
            cache_path=str(self.cache_dir / filename),
        )

    def is_cached(self, artifact: TemplateArtifact) -> bool:
        return bool(artifact.cache_path) and Path(artifact.cache_path).is_file()

    def ensure_downloaded(self, artifact: TemplateArtifact) -> str:
        """Return the local path of ``artifact``, downloading it if needed."""
        if self.is_cached(artifact):
            logger.info(f"Template already cached: {artifact.cache_path}")
            return artifact.cache_path

        policy = self.config.policy
        logger.info(f"Downloading template {artifact.filename} to storage {self.storage}")
        try:
            retry_call(
                lambda: run_command(
                    ["pveam", "download", self.storage, artifact.filename],
                    timeout=self.config.timeouts.template_download,
                ),
                attempts=policy.download_attempts,
                delay=policy.download_retry_delay,
                backoff=2,
                retry_on=(OSError, subprocess.SubprocessError),
                description=f"Download of {artifact.filename}",
                sleep=self._sleep,
            )
        except subprocess.TimeoutExpired as e:
            raise DownloadFailedError(
                f"Download of {artifact.filename} timed out after {e.timeout}s"
            ) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise DownloadFailedError(f"Download of {artifact.filename} failed: {e}") from e

        if not self.is_cached(artifact):
            raise DownloadFailedError(
                f"Download reported success but {artifact.cache_path} does not exist"
            )
        logger.info(f"Template downloaded: {artifact.cache_path}")
        return artifact.cache_path
