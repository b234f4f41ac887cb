"""QEMU user-mode emulation setup for foreign-architecture chroots."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from alpine_chroot.arch import needs_emulation, normalize_arch
from alpine_chroot.config import Configuration
from alpine_chroot.errors import EmulationError
from alpine_chroot.host.base import HostSystem, require_success
from alpine_chroot.observability import StructuredLogger

QEMU_PACKAGE = "qemu-user-static"
BINFMT_PACKAGE = "binfmt-support"


@dataclass(slots=True)
class AptInstaller:
    """Installs host packages with apt-get, refreshing the index once."""

    host: HostSystem
    index_updated: bool = False

    def install(self, *packages: str) -> None:
        if not self.index_updated:
            require_success(
                self.host.run(["apt-get", "update"]),
                error=EmulationError,
                message="Failed to update the host package index.",
            )
            self.index_updated = True
        require_success(
            self.host.run(["apt-get", "install", "-y", *packages]),
            error=EmulationError,
            message=f"Failed to install host packages: {' '.join(packages)}.",
            hint="Emulation requires a Debian-based host with apt-get.",
        )


@dataclass(slots=True)
class EmulationProvisioner:
    host: HostSystem
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    installer: AptInstaller | None = None
    emulator_dir: Path = Path("/usr/bin")
    binfmt_dir: Path = Path("/proc/sys/fs/binfmt_misc")

    def emulator_path(self, arch: str) -> Path:
        return self.emulator_dir / f"qemu-{normalize_arch(arch)}-static"

    def provision(self, config: Configuration) -> PurePosixPath | None:
        """Stage the interpreter into the target tree when arches differ.

        Returns the interpreter path as seen from inside the chroot, or None
        when the target runs natively on this host.
        """
        host_arch = self.host.machine()
        if config.arch is None or not needs_emulation(config.arch, host_arch):
            return None
        qemu_arch = normalize_arch(config.arch)
        emulator = self.emulator_path(config.arch)
        installer = self.installer or AptInstaller(self.host)
        self.installer = installer

        if not os.access(emulator, os.X_OK):
            self._log(f"Installing {QEMU_PACKAGE} on host system...")
            installer.install(QEMU_PACKAGE)
            if not os.access(emulator, os.X_OK):
                raise EmulationError(
                    "QEMU interpreter is still missing after installation.",
                    context={"emulator": str(emulator), "arch": config.arch},
                )

        if not (self.binfmt_dir / f"qemu-{qemu_arch}").exists():
            self._log(f"Installing and enabling {BINFMT_PACKAGE} on host system...")
            installer.install(BINFMT_PACKAGE)
            require_success(
                self.host.run(["update-binfmts", "--enable"]),
                error=EmulationError,
                message="Failed to enable binfmt_misc registrations.",
            )

        staged_dir = config.target_dir / "usr" / "bin"
        staged_dir.mkdir(parents=True, exist_ok=True)
        staged = staged_dir / emulator.name
        try:
            shutil.copyfile(emulator, staged)
            staged.chmod(0o755)
        except OSError as exc:
            raise EmulationError(
                "Failed to copy the QEMU interpreter into the chroot.",
                context={"emulator": str(emulator), "destination": str(staged)},
            ) from exc
        self.logger.log(
            operation="provision",
            component="emulation",
            message=f"Staged {emulator} for {config.arch} on {host_arch} host",
            extra={"emulator": str(emulator), "host_arch": host_arch},
        )
        return PurePosixPath("/usr/bin") / emulator.name

    def _log(self, message: str) -> None:
        self.logger.log(operation="provision", component="emulation", message=message)
