"""Install the development tooling on the current machine."""

import logging
import os
import platform
import shlex
import shutil
from pathlib import Path
from typing import Optional

import httpx

from devspawn.errors import HostValidationError, InsufficientSpaceError
from devspawn.models.container import HostEnvironment
from devspawn.models.provision import ProvisionOptions, ProvisionResult
from devspawn.pipeline.mcp import build_config, load_catalog, render_config
from devspawn.pipeline.runner import APT_ENV, CommandRunner
from devspawn.utils.templates import render_resource


logger = logging.getLogger(__name__)

SUPPORTED_ARCHITECTURES = ("x86_64", "amd64")
MIN_FREE_DISK_GB = 2
CONNECTIVITY_URL = "https://registry.npmjs.org/"


class LocalInstaller:
    """Installs Node.js, Claude Code and the MCP config for the current user."""

    def __init__(
        self,
        runner: CommandRunner,
        config,
        options: ProvisionOptions,
        transport: Optional[httpx.BaseTransport] = None,
        home: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ):
        self.runner = runner
        self.config = config
        self.options = options
        self.transport = transport
        self.home = Path(home) if home else Path.home()
        self.cwd = Path(cwd) if cwd else Path.cwd()

    @property
    def config_dir(self) -> Path:
        return self.home / ".config" / "claude-code"

    def run(self) -> ProvisionResult:
        progress = self.runner.progress
        self.check_requirements()
        project_path = self.setup_project()
        if self.config.features.install_node:
            self.install_node()
        self.install_claude()
        mcp_path = self.configure_mcp()
        self.create_uninstall_script()

        issues = []
        if not self.runner.check("claude --version", timeout=30):
            issues.append("Claude Code command failed")
        for issue in issues:
            progress.warning(issue)

        progress.success("Local installation completed")
        return ProvisionResult(
            environment=HostEnvironment.LOCAL,
            name=platform.node() or "localhost",
            project_path=str(project_path),
            mcp_config_path=str(mcp_path) if mcp_path else None,
            validation_issues=issues,
        )

    def check_requirements(self):
        arch = platform.machine().lower()
        if arch not in SUPPORTED_ARCHITECTURES:
            raise HostValidationError(f"Unsupported architecture: {arch} (need x86_64/amd64)")

        free_gb = shutil.disk_usage("/").free // 1024 // 1024 // 1024
        if free_gb < MIN_FREE_DISK_GB:
            raise InsufficientSpaceError("/", have=free_gb, need=MIN_FREE_DISK_GB)
        logger.info(f"Disk space: {free_gb}GB available")

        try:
            with httpx.Client(
                transport=self.transport, timeout=self.config.timeouts.probe, follow_redirects=True
            ) as client:
                client.head(CONNECTIVITY_URL)
        except httpx.HTTPError as e:
            raise HostValidationError(f"No internet connection detected: {e}") from e
        logger.info("Internet connectivity OK")

    def setup_project(self) -> Path:
        mode = self.options.project_mode
        if mode == "new":
            path = self.cwd / self.options.project_name
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"New project directory created: {path}")
            return path
        if mode == "clone" and self.options.repo_url:
            url = self.options.repo_url
            name = os.path.basename(url.rstrip("/"))
            if name.endswith(".git"):
                name = name[:-4]
            path = self.cwd / name
            self.runner.run(
                f"git clone {shlex.quote(url)} {shlex.quote(str(path))}",
                f"Cloning {url}",
            )
            return path
        logger.info(f"Using current directory: {self.cwd}")
        return self.cwd

    def install_node(self):
        if self.runner.check("command -v node"):
            logger.info("Node.js already installed")
            if not self.runner.check("command -v npm"):
                self.runner.run(
                    f"{APT_ENV} apt-get update -qq && {APT_ENV} apt-get install -y npm",
                    "Installing npm",
                )
            return
        self.runner.run(
            f"curl -fsSL https://deb.nodesource.com/setup_{self.config.setup.node_version}.x | bash - && "
            f"{APT_ENV} apt-get install -y nodejs",
            f"Installing Node.js {self.config.setup.node_version}.x",
        )

    def install_claude(self):
        if self.runner.check("command -v claude"):
            logger.info("Using existing Claude Code installation")
            return
        self.runner.run(
            f"npm install -g {shlex.quote(self.config.setup.claude_package)}",
            "Installing Claude Code CLI",
        )

    def configure_mcp(self) -> Optional[Path]:
        names = self.options.mcp_servers
        if not names:
            logger.info("No MCP servers selected")
            return None
        path = self.config_dir / "mcp-config.json"
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.runner.write_file(
            render_config(build_config(names, load_catalog())), str(path), mode="0600"
        )
        logger.info(f"MCP configuration saved to {path}")
        return path

    def create_uninstall_script(self) -> Path:
        path = self.config_dir / "uninstall.sh"
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.runner.write_file(
            render_resource("uninstall.sh.j2", claude_package=self.config.setup.claude_package),
            str(path),
            mode="0755",
        )
        return path
