"""Shared test fixtures."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from alpine_chroot.config import Configuration
from alpine_chroot.errors import MountError
from alpine_chroot.host.base import CommandResult
from alpine_chroot.keys import SIGNING_KEYS, TrustAnchor

Responder = Callable[[tuple[str, ...], bytes | None], CommandResult | None]

# Stand-in bodies: apk never runs against these in unit tests.
TEST_ANCHORS = tuple(
    TrustAnchor(id=key_id, body="QUJD" * 20)
    for key_id in sorted({key_id for ids in SIGNING_KEYS.values() for key_id in ids})
)


@dataclass(slots=True)
class FakeHost:
    """In-memory host that records commands and keeps a mount table."""

    arch: str = "x86_64"
    superuser: bool = True
    programs: set[str] = field(default_factory=lambda: {"curl", "wget"})
    mounts: list[Path] = field(default_factory=list)
    commands: list[tuple[str, ...]] = field(default_factory=list)
    stdin_log: list[bytes | None] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)
    responders: list[Responder] = field(default_factory=list)
    shm_dir: Path | None = None
    fail_mount_at: Path | None = None
    private: list[Path] = field(default_factory=list)

    def machine(self) -> str:
        return self.arch

    def is_superuser(self) -> bool:
        return self.superuser

    def which(self, program: str) -> str | None:
        return f"/usr/bin/{program}" if program in self.programs else None

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: bytes | None = None,
        capture: bool = False,
    ) -> CommandResult:
        command = tuple(argv)
        self.commands.append(command)
        self.stdin_log.append(stdin)
        for responder in self.responders:
            result = responder(command, stdin)
            if result is not None:
                return result
        program = Path(command[0]).name
        returncode = 1 if program in self.failing else 0
        stderr = b"boom" if returncode else b""
        return CommandResult(argv=command, returncode=returncode, stderr=stderr)

    def mounted_paths(self) -> frozenset[Path]:
        return frozenset(self.mounts)

    def mount(
        self,
        source: str,
        target: Path,
        *,
        fstype: str | None = None,
        bind: bool = False,
        recursive: bool = False,
    ) -> None:
        if target == self.fail_mount_at:
            raise MountError(f"Failed to mount {source} at {target}.")
        self.mounts.append(target)

    def make_private(self, target: Path, *, recursive: bool = False) -> None:
        self.private.append(target)

    def shm_backing_dir(self) -> Path | None:
        return self.shm_dir

    def programs_run(self) -> list[str]:
        return [Path(command[0]).name for command in self.commands]


@dataclass(slots=True)
class StaticTransport:
    """Transport that serves one fixed payload for every URI."""

    payload: bytes
    name: str = "static"
    calls: list[str] = field(default_factory=list)

    def fetch(self, uri: str, dest: Path) -> None:
        self.calls.append(uri)
        dest.write_bytes(self.payload)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Configuration]:
    def _make(**overrides: object) -> Configuration:
        values: dict[str, object] = {
            "target_dir": tmp_path / "alpine",
            "temp_dir": tmp_path / "tmp",
            "apk_tools_sha256": hashlib.sha256(b"apk").hexdigest(),
        }
        values.update(overrides)
        return Configuration(**values)  # type: ignore[arg-type]

    return _make
