"""Run options and results."""

from typing import Literal, Optional, List

from pydantic import BaseModel, Field

from devspawn.models.container import HostEnvironment


class ProvisionOptions(BaseModel):
    """Choices collected from flags and prompts for one run."""
    environment: HostEnvironment = HostEnvironment.LOCAL
    auto: bool = False
    interactive: bool = False
    project_mode: Literal["new", "clone", "current"] = "current"
    project_name: str = Field(default="claude-project")
    repo_url: Optional[str] = None
    mcp_servers: Optional[List[str]] = None
    ssh_public_key: Optional[str] = None


class ProvisionResult(BaseModel):
    """What the completion summary shows."""
    environment: HostEnvironment
    name: str
    container_ref: Optional[str] = None
    ip_address: Optional[str] = None
    cores: Optional[int] = None
    memory_mb: Optional[int] = None
    disk_gb: Optional[int] = None
    developer_user: str = "developer"
    vscode_url: Optional[str] = None
    vscode_password: Optional[str] = None
    mcp_config_path: Optional[str] = None
    project_path: Optional[str] = None
    dev_volume: bool = False
    validation_issues: List[str] = Field(default_factory=list)
    log_file: Optional[str] = None
