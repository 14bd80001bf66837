"""Storage pool models."""

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

ROOTFS_CONTENT = "rootdir"


class StoragePool(BaseModel):
    """A storage pool as reported live by the host.

    Capacities are kept in kilobytes, the unit ``pvesm status`` reports, and
    converted to gigabytes with floor division the way the host tool rounds.
    """
    name: str
    type: str = ""
    active: bool = True
    total_kb: int = Field(default=0, ge=0)
    used_kb: int = Field(default=0, ge=0)
    content: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(frozen=True)

    @property
    def total_gb(self) -> int:
        return self.total_kb // 1024 // 1024

    @property
    def available_gb(self) -> int:
        return max(self.total_kb - self.used_kb, 0) // 1024 // 1024

    @property
    def rootfs_capable(self) -> bool:
        return ROOTFS_CONTENT in self.content

    @property
    def eligible(self) -> bool:
        return self.active and self.rootfs_capable
