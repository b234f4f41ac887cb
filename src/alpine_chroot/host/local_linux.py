"""Host operations for a native Linux system.

Mount operations shell out to ``mount(8)`` the same way an operator would, and
the mount table is read from ``/proc/self/mounts``.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from alpine_chroot.errors import HostExecutionError, MountError
from alpine_chroot.host.base import CommandResult, require_success


@dataclass(slots=True)
class LocalLinuxHost:
    name: str = "local_linux"
    mounts_table: Path = Path("/proc/self/mounts")

    def machine(self) -> str:
        return os.uname().machine

    def is_superuser(self) -> bool:
        return os.geteuid() == 0

    def which(self, program: str) -> str | None:
        return shutil.which(program)

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: bytes | None = None,
        capture: bool = False,
    ) -> CommandResult:
        self._ensure_linux()
        try:
            completed = subprocess.run(
                list(argv),
                input=stdin,
                capture_output=capture,
                check=False,
            )
        except FileNotFoundError as exc:
            raise HostExecutionError(
                f"Program not found: {argv[0]}",
                hint="Install the program on the host or adjust PATH.",
                context={"host": self.name, "command": " ".join(argv)},
            ) from exc
        return CommandResult(
            argv=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )

    def mounted_paths(self) -> frozenset[Path]:
        paths: set[Path] = set()
        for line in self.mounts_table.read_text(encoding="utf-8").splitlines():
            fields = line.split()
            if len(fields) >= 2:
                paths.add(Path(_unescape_mount_path(fields[1])))
        return frozenset(paths)

    def mount(
        self,
        source: str,
        target: Path,
        *,
        fstype: str | None = None,
        bind: bool = False,
        recursive: bool = False,
    ) -> None:
        argv = ["mount", "-v"]
        if fstype is not None:
            argv.extend(["-t", fstype])
        if bind:
            argv.append("--rbind" if recursive else "--bind")
        argv.extend([source, str(target)])
        require_success(
            self.run(argv, capture=True),
            error=MountError,
            message=f"Failed to mount {source} at {target}.",
            hint="Run as root and check that the source exists on the host.",
            context={"host": self.name},
        )

    def make_private(self, target: Path, *, recursive: bool = False) -> None:
        flag = "--make-rprivate" if recursive else "--make-private"
        require_success(
            self.run(["mount", flag, str(target)], capture=True),
            error=MountError,
            message=f"Failed to make {target} private.",
            context={"host": self.name},
        )

    def shm_backing_dir(self) -> Path | None:
        if Path("/dev/shm").is_symlink() and Path("/run/shm").is_dir():
            return Path("/run/shm")
        return None

    def _ensure_linux(self) -> None:
        if not sys.platform.startswith("linux"):
            raise HostExecutionError(
                "Provisioning a chroot requires a Linux host.",
                context={"host": self.name, "platform": sys.platform},
            )


def _unescape_mount_path(field: str) -> str:
    # /proc/mounts encodes space, tab, newline and backslash as octal escapes
    for escaped, plain in (("\\040", " "), ("\\011", "\t"), ("\\012", "\n"), ("\\134", "\\")):
        field = field.replace(escaped, plain)
    return field
