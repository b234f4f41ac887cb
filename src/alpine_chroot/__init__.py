"""Provision Alpine Linux chroots with generated enter/destroy scripts."""

__version__ = "0.1.0"

from .arch import needs_emulation, normalize_arch
from .config import Configuration
from .errors import (
    ChrootError,
    EmulationError,
    ErrorCode,
    HostExecutionError,
    IntegrityError,
    MountError,
    PackageError,
    PrivilegeError,
    TransportError,
    ValidationError,
)
from .keys import ALPINE_KEYS, TrustAnchor, install_keys
from .orchestrator import Orchestrator
from .report import ProvisionReport

__all__ = [
    "ALPINE_KEYS",
    "ChrootError",
    "Configuration",
    "EmulationError",
    "ErrorCode",
    "HostExecutionError",
    "IntegrityError",
    "MountError",
    "Orchestrator",
    "PackageError",
    "PrivilegeError",
    "ProvisionReport",
    "TransportError",
    "TrustAnchor",
    "ValidationError",
    "install_keys",
    "needs_emulation",
    "normalize_arch",
]
