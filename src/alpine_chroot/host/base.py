"""Protocol for the privileged host operations used during provisioning.

Everything that touches the mount table, runs host programs, or asks the
kernel about the machine goes through :class:`HostSystem`, so the rest of the
package stays platform-agnostic and can be exercised against a fake host.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from alpine_chroot.errors import ChrootError


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class HostSystem(Protocol):
    def machine(self) -> str:
        """Return the host machine architecture as reported by the kernel."""

    def is_superuser(self) -> bool:
        """Return whether the current process runs with superuser rights."""

    def which(self, program: str) -> str | None:
        """Return the path of *program* on PATH, or None."""

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: bytes | None = None,
        capture: bool = False,
    ) -> CommandResult:
        """Run a host program to completion and return its result."""

    def mounted_paths(self) -> frozenset[Path]:
        """Return every mount point currently present in the mount table."""

    def mount(
        self,
        source: str,
        target: Path,
        *,
        fstype: str | None = None,
        bind: bool = False,
        recursive: bool = False,
    ) -> None:
        """Mount *source* at *target*; raise MountError on failure."""

    def make_private(self, target: Path, *, recursive: bool = False) -> None:
        """Set mount propagation of *target* to private."""

    def shm_backing_dir(self) -> Path | None:
        """Return the directory behind a symlinked /dev/shm, if the host has one."""


def require_success(
    result: CommandResult,
    *,
    error: type[ChrootError],
    message: str,
    hint: str | None = None,
    context: Mapping[str, str] | None = None,
) -> CommandResult:
    """Raise *error* with command details when *result* is a failure."""
    if result.ok:
        return result
    details = {
        "command": " ".join(result.argv),
        "returncode": str(result.returncode),
        "stderr": result.stderr_text[:2000],
    }
    details.update(context or {})
    raise error(message, hint=hint, context=details)  # type: ignore[call-arg]
