"""Configuration models."""

import tempfile
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devspawn.models.container import FeatureFlags


class ContainerDefaults(BaseModel):
    """Defaults used to build a ContainerSpec."""
    name: str = Field(default="claude-code-dev")
    cores: int = Field(default=4, ge=1)
    memory_mb: int = Field(default=8192, ge=256)
    disk_gb: int = Field(default=20, ge=1)
    os_template: str = Field(default="ubuntu-22.04")
    dev_volume_gb: int = Field(default=50, ge=0)
    id_floor: int = Field(default=100, ge=100)
    unprivileged: bool = True
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    ip_config: str = Field(default="dhcp")
    tags: List[str] = Field(
        default_factory=lambda: ["development", "ai", "claude", "nodejs", "vscode", "docker"]
    )


class FeatureConfig(BaseModel):
    """Optional components installed into the target."""
    install_vscode: bool = True
    install_docker: bool = True
    install_node: bool = True
    install_templates: bool = True
    auto_start: bool = True


class TimeoutConfig(BaseModel):
    """Per-operation timeouts in seconds."""
    catalog_update: int = Field(default=60, gt=0)
    template_download: int = Field(default=900, gt=0)
    create: int = Field(default=300, gt=0)
    start: int = Field(default=120, gt=0)
    stop: int = Field(default=60, gt=0)
    boot: int = Field(default=60, gt=0)
    network: int = Field(default=120, gt=0)
    command: int = Field(default=1800, gt=0)
    probe: int = Field(default=10, gt=0)
    lock: int = Field(default=300, ge=0)


class PolicyConfig(BaseModel):
    """Behaviour choices for ambiguous or degradable conditions."""
    network_readiness: Literal["any", "all"] = "any"
    memory_check: Literal["warn", "fail"] = "warn"
    rollback: Literal["prompt", "always", "never"] = "prompt"
    package_attempts: int = Field(default=3, ge=1)
    package_retry_delay: float = Field(default=5, ge=0)
    download_attempts: int = Field(default=3, ge=1)
    download_retry_delay: float = Field(default=10, ge=0)
    boot_poll_interval: float = Field(default=1, gt=0)
    network_poll_interval: float = Field(default=2, gt=0)


class ProxmoxConfig(BaseModel):
    """Proxmox VE host paths and probes."""
    storage_cfg: str = Field(default="/etc/pve/storage.cfg")
    template_storage: str = Field(default="local")
    template_cache_dir: str = Field(default="/var/lib/vz/template/cache")
    network_targets: List[str] = Field(
        default_factory=lambda: ["8.8.8.8", "1.1.1.1", "archive.ubuntu.com"]
    )
    min_version: int = Field(default=7)
    recommended_version: int = Field(default=8)
    lock_file: str = Field(default="/run/lock/devspawn.lock")

    @field_validator("network_targets")
    @classmethod
    def validate_network_targets(cls, v):
        """Readiness needs at least two probe targets."""
        if len(v) < 2:
            raise ValueError("At least two network targets are required")
        return v


class DockerConfig(BaseModel):
    """Docker runtime settings."""
    images: Dict[str, str] = Field(
        default_factory=lambda: {
            "ubuntu-22.04": "ubuntu:22.04",
            "ubuntu-24.04": "ubuntu:24.04",
            "ubuntu-20.04": "ubuntu:20.04",
            "debian-12": "debian:12",
        }
    )
    network: str = Field(default="bridge")
    volume_prefix: str = Field(default="devspawn")
    # Base images ship without ping; readiness is a TCP connect to host:port
    network_targets: List[str] = Field(
        default_factory=lambda: ["8.8.8.8:53", "1.1.1.1:53", "archive.ubuntu.com:80"]
    )

    @field_validator("network_targets")
    @classmethod
    def validate_network_targets(cls, v):
        """Targets are host:port pairs, at least two of them."""
        if len(v) < 2:
            raise ValueError("At least two network targets are required")
        for target in v:
            host, sep, port = target.rpartition(":")
            if not sep or not host or not port.isdigit():
                raise ValueError(f"Network target must be host:port, got {target!r}")
        return v


class SetupConfig(BaseModel):
    """What the setup stage installs."""
    developer_user: str = Field(default="developer")
    node_version: int = Field(default=20)
    claude_package: str = Field(default="@anthropic-ai/claude-code@latest")
    essential_packages: List[str] = Field(
        default_factory=lambda: [
            "curl", "wget", "git", "build-essential", "software-properties-common",
            "apt-transport-https", "ca-certificates", "gnupg", "lsb-release",
            "unzip", "zip", "jq", "tree", "htop", "nano", "vim", "tmux", "sudo",
            "openssh-server", "python3", "python3-pip", "zsh", "fail2ban", "ufw",
        ]
    )
    npm_packages: List[str] = Field(
        default_factory=lambda: [
            "yarn", "pnpm", "typescript", "eslint", "prettier", "nodemon", "pm2", "http-server",
        ]
    )
    mcp_servers: List[str] = Field(
        default_factory=lambda: ["github", "filesystem", "context7"]
    )
    vscode_port: int = Field(default=8080)
    dev_root: str = Field(default="/opt/development")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    log_dir: str = Field(default_factory=tempfile.gettempdir)

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class DevspawnConfig(BaseModel):
    """Main configuration model."""
    container: ContainerDefaults = Field(default_factory=ContainerDefaults)
    features: FeatureConfig = Field(default_factory=FeatureConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    proxmox: ProxmoxConfig = Field(default_factory=ProxmoxConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    setup: SetupConfig = Field(default_factory=SetupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="ignore")
