"""Template artifact models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TemplateArtifact(BaseModel):
    """A root filesystem template resolved from the remote catalog."""
    os: str = Field(..., description="OS identifier, e.g. ubuntu")
    version: str = Field(..., description="OS version, e.g. 22.04")
    filename: str = Field(..., description="Catalog file name or image reference")
    storage: Optional[str] = Field(None, description="Storage holding the template cache")
    cache_path: Optional[str] = Field(None, description="Local cache file path")

    model_config = ConfigDict(frozen=True)

    @property
    def volume_ref(self) -> str:
        """Reference passed to the create command."""
        if self.storage:
            return f"{self.storage}:vztmpl/{self.filename}"
        return self.filename


def split_os_template(os_template: str):
    """Split ``ubuntu-22.04`` into ``("ubuntu", "22.04")``."""
    os_name, sep, version = os_template.partition("-")
    if not sep or not os_name or not version:
        raise ValueError(f"Unsupported OS template: {os_template}")
    return os_name, version
