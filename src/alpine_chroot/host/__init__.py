"""Host interaction interface and implementations."""

from .base import CommandResult, HostSystem, require_success
from .local_linux import LocalLinuxHost

__all__ = [
    "CommandResult",
    "HostSystem",
    "LocalLinuxHost",
    "require_success",
]
