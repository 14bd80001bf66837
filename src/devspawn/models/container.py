"""Container specification models."""

from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HostEnvironment(str, Enum):
    """Provisioning target."""
    LOCAL = "local"
    PROXMOX_LXC = "proxmox"
    DOCKER = "docker"

    @property
    def label(self) -> str:
        return {
            HostEnvironment.LOCAL: "Local system",
            HostEnvironment.PROXMOX_LXC: "Proxmox LXC container",
            HostEnvironment.DOCKER: "Docker container",
        }[self]


class ProvisioningStage(str, Enum):
    """Pipeline stage, tracked for error reporting and rollback."""
    VALIDATION = "Validation"
    TEMPLATE_DOWNLOAD = "Template Download"
    CONTAINER_CREATION = "Container Creation"
    CONTAINER_SETUP = "Container Setup"


class FeatureFlags(BaseModel):
    """LXC feature flags."""
    nesting: bool = True
    keyctl: bool = True
    fuse: bool = True

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_pct(self) -> str:
        """Render as the ``--features`` value understood by pct."""
        return ",".join(
            f"{name}={int(getattr(self, name))}" for name in ("keyctl", "nesting", "fuse")
        )


class ContainerSpec(BaseModel):
    """Container specification.

    Built during interactive or auto configuration and frozen from then on;
    allocation produces updated copies with ``model_copy(update=...)``.
    """
    name: str = Field(..., description="Container hostname / Docker name")
    ctid: Optional[int] = Field(None, description="Proxmox container identifier")
    cores: int = Field(default=4, ge=1)
    memory_mb: int = Field(default=8192, ge=256)
    disk_gb: int = Field(default=20, ge=1)
    storage_pool: Optional[str] = None
    bridge: Optional[str] = None
    os_template: str = Field(default="ubuntu-22.04")
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    unprivileged: bool = True
    dev_volume_gb: int = Field(default=0, ge=0)
    ip_config: str = Field(default="dhcp", description="'dhcp' or 'ip=<cidr>,gw=<gateway>'")
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Hostnames: letters, digits and dashes only."""
        stripped = v.strip()
        if not stripped or not all(c.isalnum() or c == "-" for c in stripped):
            raise ValueError(f"Invalid container name: {v!r}")
        if stripped.startswith("-") or stripped.endswith("-"):
            raise ValueError(f"Invalid container name: {v!r}")
        return stripped

    @property
    def required_storage_gb(self) -> int:
        """Root disk plus auxiliary development volume."""
        return self.disk_gb + self.dev_volume_gb

    @property
    def ref(self) -> str:
        """Identifier used on the runtime command line."""
        return str(self.ctid) if self.ctid is not None else self.name

    def net0(self) -> str:
        """Render the Proxmox ``--net0`` descriptor."""
        ip_part = "ip=dhcp" if self.ip_config == "dhcp" else self.ip_config
        return f"name=eth0,bridge={self.bridge},firewall=1,{ip_part},type=veth"
