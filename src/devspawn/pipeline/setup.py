"""Configuration steps run inside a freshly created container."""

import logging
import os
import secrets
import shlex
import tarfile
import tempfile
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from devspawn.models.provision import ProvisionOptions
from devspawn.pipeline.mcp import build_config, load_catalog, render_config
from devspawn.pipeline.runner import APT_ENV, CommandRunner
from devspawn.utils.templates import render_resource


logger = logging.getLogger(__name__)

CONTAINER_PROJECT_DIR = "/opt/project"
VSCODE_PASSWORD_FILE = "/etc/code-server/password.env"
CLAUDE_COMMANDS = ("test", "build", "deploy")


@dataclass
class SetupOutcome:
    """Facts about the finished setup shown in the completion summary."""
    vscode_password: Optional[str] = None
    mcp_config_path: Optional[str] = None
    project_path: Optional[str] = None


class ContainerSetup:
    """Installs and configures the development environment in a container.

    ``systemd`` is False for targets without an init system (Docker), in
    which case service units, the firewall and sshd are left alone.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config,
        options: ProvisionOptions,
        systemd: bool = True,
        hostname: str = "claude-code-dev",
    ):
        self.runner = runner
        self.config = config
        self.setup = config.setup
        self.features = config.features
        self.options = options
        self.systemd = systemd
        self.hostname = hostname
        self.user = self.setup.developer_user
        self.home = f"/home/{self.user}"
        self.dev_root = self.setup.dev_root
        self.outcome = SetupOutcome()

    @property
    def email(self) -> str:
        return f"{self.user}@{self.hostname}"

    def steps(self) -> List[Tuple[str, Callable[[], None]]]:
        steps = [
            ("Updating system packages", self.system_update),
            ("Installing essential packages", self.essential_packages),
        ]
        if self.features.install_node:
            steps.append((f"Installing Node.js {self.setup.node_version}", self.install_node))
        steps.append(("Installing GitHub CLI", self.install_github_cli))
        if self.features.install_docker:
            steps.append(("Installing Docker", self.install_docker))
        steps.extend([
            ("Installing Claude Code", self.install_claude),
            ("Installing development npm packages", self.install_npm_packages),
            ("Creating developer user", self.create_user),
            ("Setting up SSH keys", self.setup_ssh),
            ("Setting up GPG", self.setup_gpg),
            ("Installing Oh My Zsh", self.setup_shell),
            ("Configuring Git", self.configure_git),
            ("Creating development directories", self.create_dev_tree),
        ])
        if self.features.install_vscode:
            steps.append(("Installing VS Code Server", self.install_vscode))
        if self.features.install_templates:
            steps.append(("Installing project templates", self.install_templates))
        steps.append(("Configuring MCP servers", self.configure_mcp))
        if self.systemd:
            steps.extend([
                ("Configuring firewall", self.configure_firewall),
                ("Hardening SSH", self.harden_ssh),
            ])
        steps.extend([
            ("Creating health check script", self.install_health_check),
            ("Setting up welcome message", self.install_motd),
            ("Configuring automatic updates", self.configure_auto_updates),
            ("Setting up project", self.setup_project),
            ("Final permissions and cleanup", self.finalize),
        ])
        return steps

    def run(self) -> SetupOutcome:
        for description, step in self.steps():
            logger.info(f"Setup step: {description}")
            self.runner.progress.info(description)
            step()
        self.runner.progress.success("Container setup completed")
        return self.outcome

    def _as_user(self, command: str, description: str):
        return self.runner.run(command, description, user=self.user)

    # Packages

    def system_update(self):
        self.runner.run(
            f"{APT_ENV} apt-get update -q && {APT_ENV} apt-get upgrade -y -q",
            "Updating system packages",
        )

    def essential_packages(self):
        self.runner.install_packages(self.setup.essential_packages)

    def install_node(self):
        self.runner.run(
            f"curl -fsSL https://deb.nodesource.com/setup_{self.setup.node_version}.x | bash -",
            "Adding NodeSource repository",
        )
        self.runner.install_package("nodejs")

    def install_github_cli(self):
        keyring = "/usr/share/keyrings/githubcli-archive-keyring.gpg"
        self.runner.run(
            f"curl -fsSL https://cli.github.com/packages/githubcli-archive-keyring.gpg -o {keyring} && "
            f"chmod go+r {keyring} && "
            f'echo "deb [arch=$(dpkg --print-architecture) signed-by={keyring}] '
            f'https://cli.github.com/packages stable main" > /etc/apt/sources.list.d/github-cli.list && '
            f"{APT_ENV} apt-get update -q",
            "Adding GitHub CLI repository",
        )
        self.runner.install_package("gh")

    def install_docker(self):
        if not self.systemd:
            logger.warning("Skipping Docker engine install: target has no init system")
            return
        keyring = "/usr/share/keyrings/docker-archive-keyring.gpg"
        self.runner.run(
            f"curl -fsSL https://download.docker.com/linux/ubuntu/gpg | gpg --dearmor --yes -o {keyring} && "
            f'echo "deb [arch=$(dpkg --print-architecture) signed-by={keyring}] '
            f'https://download.docker.com/linux/ubuntu $(lsb_release -cs) stable" '
            f"> /etc/apt/sources.list.d/docker.list && "
            f"{APT_ENV} apt-get update -q",
            "Adding Docker repository",
        )
        for package in ("docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin"):
            self.runner.install_package(package)
        self.runner.run("systemctl enable --now docker", "Starting Docker")

    def install_claude(self):
        self.runner.run(
            f"npm install -g {shlex.quote(self.setup.claude_package)}", "Installing Claude Code"
        )

    def install_npm_packages(self):
        if not self.setup.npm_packages:
            return
        packages = " ".join(shlex.quote(p) for p in self.setup.npm_packages)
        self.runner.run(f"npm install -g {packages}", "Installing development npm packages")

    # User

    def create_user(self):
        user = shlex.quote(self.user)
        groups = "sudo,docker" if self.features.install_docker and self.systemd else "sudo"
        self.runner.run(
            f"id {user} >/dev/null 2>&1 || "
            f"(useradd -m -s /bin/zsh -G {groups} {user} && "
            f'echo "{self.user}:$(openssl rand -base64 32)" | chpasswd)',
            "Creating developer user",
        )
        self.runner.write_file(
            f"{self.user} ALL=(ALL) NOPASSWD:ALL\n", f"/etc/sudoers.d/{self.user}", mode="0440"
        )

    def setup_ssh(self):
        key = f"{self.home}/.ssh/id_ed25519"
        self._as_user(
            f"mkdir -p ~/.ssh && chmod 700 ~/.ssh && "
            f"(test -f {key} || ssh-keygen -t ed25519 -f {key} -N '' -C {shlex.quote(self.email)})",
            "Generating SSH key",
        )
        if self.options.ssh_public_key:
            self.runner.write_file(
                self.options.ssh_public_key.strip() + "\n",
                f"{self.home}/.ssh/authorized_keys",
                mode="0600",
                owner=self.user,
            )

    def setup_gpg(self):
        batch = f"/tmp/devspawn-gpg-{secrets.token_hex(4)}"
        self.runner.write_file(
            render_resource("gpg-batch.j2", real_name="Developer", email=self.email),
            batch,
            mode="0600",
            owner=self.user,
        )
        email = shlex.quote(self.email)
        self._as_user(
            f"(gpg --list-secret-keys {email} >/dev/null 2>&1 || gpg --batch --gen-key {batch}); "
            f"rc=$?; rm -f {batch}; exit $rc",
            "Generating GPG key",
        )
        self._as_user(
            "key=$(gpg --list-secret-keys --keyid-format LONG | awk '/^sec/{print $2; exit}' | cut -d/ -f2) && "
            'git config --global user.signingkey "$key" && '
            "git config --global commit.gpgsign true",
            "Configuring commit signing",
        )

    def setup_shell(self):
        custom = "~/.oh-my-zsh/custom/plugins"
        self._as_user(
            "test -d ~/.oh-my-zsh || "
            '(sh -c "$(curl -fsSL https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh)" "" --unattended && '
            f"git clone https://github.com/zsh-users/zsh-syntax-highlighting.git {custom}/zsh-syntax-highlighting && "
            f"git clone https://github.com/zsh-users/zsh-autosuggestions {custom}/zsh-autosuggestions && "
            "sed -i 's/^plugins=(git)/plugins=(git docker node npm yarn python zsh-syntax-highlighting zsh-autosuggestions)/' ~/.zshrc)",
            "Installing Oh My Zsh",
        )
        self.runner.write_file(
            render_resource(
                "zshrc.j2", dev_root=self.dev_root, install_docker=self.features.install_docker
            ),
            f"{self.home}/.zshrc.devspawn",
            owner=self.user,
        )
        self._as_user(
            "grep -qxF 'source ~/.zshrc.devspawn' ~/.zshrc || echo 'source ~/.zshrc.devspawn' >> ~/.zshrc",
            "Loading development aliases",
        )

    def configure_git(self):
        settings = [
            ("init.defaultBranch", "main"),
            ("user.name", "Developer"),
            ("user.email", self.email),
            ("pull.rebase", "false"),
            ("core.editor", "vim"),
        ]
        command = " && ".join(
            f"git config --global {key} {shlex.quote(value)}" for key, value in settings
        )
        self._as_user(command, "Configuring Git")

    def create_dev_tree(self):
        root = shlex.quote(self.dev_root)
        self.runner.run(
            f"mkdir -p {root}/projects {root}/templates {root}/bin {root}/docs && "
            f"chown -R {self.user}:{self.user} {root} && chmod -R 755 {root}",
            "Creating development directories",
        )

    # Services

    def install_vscode(self):
        password = secrets.token_urlsafe(16)
        port = self.setup.vscode_port
        self.runner.run(
            "command -v code-server >/dev/null || curl -fsSL https://code-server.dev/install.sh | sh",
            "Installing VS Code Server",
        )
        self.runner.run("mkdir -p /etc/code-server", "Creating code-server config directory")
        self.runner.write_file(
            f"PASSWORD={password}\n", VSCODE_PASSWORD_FILE, mode="0600"
        )
        self.outcome.vscode_password = password

        if not self.systemd:
            logger.warning("No init system: start code-server manually inside the container")
            return
        self.runner.write_file(
            render_resource(
                "code-server.service.j2",
                user=self.user,
                dev_root=self.dev_root,
                port=port,
                password_file=VSCODE_PASSWORD_FILE,
            ),
            "/etc/systemd/system/code-server.service",
        )
        self.runner.run(
            "systemctl daemon-reload && systemctl enable --now code-server",
            "Starting VS Code Server",
        )

    def install_templates(self):
        self.runner.write_file(
            render_resource(
                "CLAUDE.md.j2",
                project_name=self.options.project_name,
                project_description="Describe the project here.",
                node_version=self.setup.node_version,
                install_vscode=self.features.install_vscode,
                install_docker=self.features.install_docker,
            ),
            f"{self.dev_root}/templates/CLAUDE.md",
            owner=self.user,
        )
        self._as_user("mkdir -p ~/.claude/commands", "Creating Claude command directory")
        for command in CLAUDE_COMMANDS:
            self.runner.write_file(
                render_resource("command.md.j2", command=command),
                f"{self.home}/.claude/commands/{command}.md",
                owner=self.user,
            )

    def configure_mcp(self):
        names = self.options.mcp_servers
        if names is None:
            names = self.setup.mcp_servers
        config = build_config(names, load_catalog())
        path = f"{self.home}/.config/claude-code/mcp-config.json"
        self._as_user("mkdir -p ~/.config/claude-code", "Creating Claude Code config directory")
        self.runner.write_file(render_config(config), path, mode="0600", owner=self.user)
        self.outcome.mcp_config_path = path

    def configure_firewall(self):
        rules = ["ufw --force enable", "ufw default deny incoming", "ufw default allow outgoing", "ufw allow ssh"]
        if self.features.install_vscode:
            rules.append(f"ufw allow {self.setup.vscode_port}/tcp")
        self.runner.run(" && ".join(rules), "Configuring firewall")

    def harden_ssh(self):
        self.runner.run(
            "sed -i 's/^#\\?PasswordAuthentication .*/PasswordAuthentication no/' /etc/ssh/sshd_config && "
            "sed -i 's/^#\\?PubkeyAuthentication .*/PubkeyAuthentication yes/' /etc/ssh/sshd_config && "
            "sed -i 's/^#\\?PermitRootLogin .*/PermitRootLogin no/' /etc/ssh/sshd_config && "
            "systemctl restart ssh",
            "Hardening SSH",
        )

    def install_health_check(self):
        services = ["ssh"]
        if self.features.install_docker:
            services.append("docker")
        if self.features.install_vscode:
            services.append("code-server")
        self.runner.write_file(
            render_resource("health-check.sh.j2", services=services, dev_root=self.dev_root),
            f"{self.dev_root}/bin/health-check",
            mode="0755",
            owner=self.user,
        )

    def install_motd(self):
        self.runner.write_file(
            render_resource(
                "motd.sh.j2",
                dev_root=self.dev_root,
                user=self.user,
                install_vscode=self.features.install_vscode,
                port=self.setup.vscode_port,
                password_file=VSCODE_PASSWORD_FILE,
            ),
            "/etc/update-motd.d/10-claude-code",
            mode="0755",
        )

    def configure_auto_updates(self):
        self.runner.write_file(
            render_resource("20auto-upgrades.j2"), "/etc/apt/apt.conf.d/20auto-upgrades"
        )
        self.runner.install_package("unattended-upgrades")
        if self.systemd:
            self.runner.run("systemctl enable unattended-upgrades", "Enabling automatic updates")

    # Project

    def setup_project(self):
        mode = self.options.project_mode
        target = CONTAINER_PROJECT_DIR
        if mode == "new":
            self.runner.run(f"mkdir -p {target}", "Creating project directory")
        elif mode == "clone":
            if not self.options.repo_url:
                logger.warning("Clone mode without a repository URL; creating an empty project")
                self.runner.run(f"mkdir -p {target}", "Creating project directory")
            else:
                self.runner.run(
                    f"git clone {shlex.quote(self.options.repo_url)} {target}",
                    "Cloning repository",
                )
        else:
            self._copy_current_directory(target)
        self.runner.run(f"chown -R {self.user}:{self.user} {target}", "Setting project ownership")
        self.outcome.project_path = target

    def _copy_current_directory(self, target: str):
        fd, archive = tempfile.mkstemp(prefix="devspawn-project-", suffix=".tar.gz")
        os.close(fd)
        remote = f"/tmp/{os.path.basename(archive)}"
        try:
            with tarfile.open(archive, "w:gz") as tar:
                tar.add(os.getcwd(), arcname=".")
            self.runner.target.push_file(archive, remote, mode="0600")
        finally:
            os.unlink(archive)
        self.runner.run(
            f"mkdir -p {target} && tar -xzf {remote} -C {target} && rm -f {remote}",
            "Copying current project",
        )

    def finalize(self):
        self.runner.run(
            f"chown -R {self.user}:{self.user} {self.home} {shlex.quote(self.dev_root)} && "
            f"{APT_ENV} apt-get autoremove -y -q && apt-get autoclean -q",
            "Final permissions and cleanup",
        )
