"""Error taxonomy for provisioning runs.

Every error raised by devspawn derives from :class:`DevspawnError`. The
pipeline stamps the :class:`ProvisioningStage` an error was raised in onto
the exception before re-raising it, so the CLI can print a stage specific
remediation hint. Each family maps to its own process exit code.
"""

from typing import Optional


class DevspawnError(Exception):
    """Base class for all devspawn errors."""
    category = "Error"
    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.stage = None


class ConfigError(DevspawnError):
    """Invalid configuration file or environment override."""
    category = "Configuration error"
    exit_code = 2


class UserCancelledError(DevspawnError):
    """User declined to continue at a prompt."""
    category = "Cancelled"
    exit_code = 1


class ProvisioningInterrupted(DevspawnError):
    """Run was interrupted by SIGINT or SIGTERM."""
    category = "Interrupted"
    exit_code = 130


# Validation


class HostValidationError(DevspawnError):
    """Host or resource validation failed."""
    category = "Validation error"
    exit_code = 2


class NotPrivilegedError(HostValidationError):
    """Operation requires root."""


class WrongHostError(HostValidationError):
    """Requested target is not supported by this host."""


class ContainerIdInUseError(HostValidationError):
    """Container identifier is already claimed."""

    def __init__(self, ctid):
        super().__init__(f"ID {ctid} is already in use")
        self.ctid = ctid


class PoolNotFoundError(HostValidationError):
    """Storage pool is not known to the host."""

    def __init__(self, pool: str, available: Optional[list] = None):
        available = available or []
        super().__init__(
            f"Storage pool '{pool}' not found. Available pools: {' '.join(available) or 'none'}"
        )
        self.pool = pool
        self.available = available


class PoolNotRootfsCapableError(HostValidationError):
    """Storage pool cannot hold container root filesystems."""

    def __init__(self, pool: str, content: Optional[list] = None):
        content_display = ",".join(content) if content else "not specified"
        super().__init__(
            f"Storage pool '{pool}' does not support containers (rootdir content). "
            f"Content: {content_display}"
        )
        self.pool = pool


class InsufficientSpaceError(HostValidationError):
    """Storage pool has less free space than requested."""

    def __init__(self, pool: str, have: int, need: int):
        super().__init__(
            f"Insufficient storage in '{pool}': need {need}GB, have {have}GB available"
        )
        self.pool = pool
        self.have = have
        self.need = need


class NoEligibleStoragePoolError(HostValidationError):
    """No active storage pool advertises rootdir content."""

    def __init__(self):
        super().__init__("No active storage pool supports container root filesystems")


class InsufficientMemoryError(HostValidationError):
    """Host has less free memory than the container is configured for."""

    def __init__(self, have: int, need: int):
        super().__init__(
            f"Host memory may be insufficient: need {need}MB, have {have}MB available"
        )
        self.have = have
        self.need = need


class BridgeNotFoundError(HostValidationError):
    """Network bridge does not exist on the host."""

    def __init__(self, bridge: str):
        super().__init__(f"Network bridge '{bridge}' does not exist")
        self.bridge = bridge


class HostLockedError(HostValidationError):
    """Another provisioning run holds the host lock."""


# Template


class TemplateError(DevspawnError):
    """Template resolution or download failed."""
    category = "Template error"
    exit_code = 3


class CatalogUnreachableError(TemplateError):
    """Remote template catalog could not be listed."""


class TemplateNotFoundError(TemplateError):
    """No catalog entry matches the requested OS."""

    def __init__(self, os_template: str):
        super().__init__(
            f"No {os_template} template found. Check internet connection and storage configuration."
        )
        self.os_template = os_template


class DownloadFailedError(TemplateError):
    """Template download failed or left no file behind."""


# Creation


class CreationError(DevspawnError):
    """Container creation, start or readiness failed."""
    category = "Container creation error"
    exit_code = 4


class CreateFailedError(CreationError):
    """Create command exited non-zero or timed out."""


class StartFailedError(CreationError):
    """Start command exited non-zero or timed out."""


class BootTimeoutError(CreationError):
    """Container shell never became available."""


class NetworkTimeoutError(CreationError):
    """Container never reached the outside network."""


class LifecycleError(CreationError):
    """Lifecycle operation requested out of order."""


# Setup


class SetupError(DevspawnError):
    """Command inside the target failed."""
    category = "Setup error"
    exit_code = 5


class CommandFailedError(SetupError):
    """Command exited non-zero or timed out."""

    def __init__(self, description: str, exit_code: Optional[int], detail: str = ""):
        message = f"{description} failed (exit code: {exit_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.description = description
        self.returncode = exit_code
        self.detail = detail


class PackageInstallError(CommandFailedError):
    """Package install failed on every attempt."""

    def __init__(self, package: str, attempts: int, exit_code: Optional[int] = None):
        super().__init__(f"Installing {package}", exit_code, f"gave up after {attempts} attempts")
        self.package = package
        self.attempts = attempts
