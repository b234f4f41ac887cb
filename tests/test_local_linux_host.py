import sys
from pathlib import Path

import pytest

from alpine_chroot.errors import HostExecutionError, MountError
from alpine_chroot.host import LocalLinuxHost
from alpine_chroot.host.base import CommandResult

linux_only = pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="Local host is Linux-specific."
)


def test_mounted_paths_unescape_mount_table(tmp_path: Path) -> None:
    table = tmp_path / "mounts"
    table.write_text(
        "proc /proc proc rw 0 0\n"
        "/dev/sda1 /srv/my\\040data ext4 rw 0 0\n"
        "none /alpine/proc proc rw 0 0\n",
        encoding="utf-8",
    )

    paths = LocalLinuxHost(mounts_table=table).mounted_paths()

    assert paths == frozenset({Path("/proc"), Path("/srv/my data"), Path("/alpine/proc")})


def test_run_fails_on_non_linux_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("alpine_chroot.host.local_linux.sys.platform", "darwin")

    with pytest.raises(HostExecutionError) as excinfo:
        LocalLinuxHost().run(["true"])

    assert "Linux host" in str(excinfo.value)
    assert excinfo.value.code == "E_HOST_EXECUTION"


@linux_only
def test_run_reports_missing_program() -> None:
    with pytest.raises(HostExecutionError) as excinfo:
        LocalLinuxHost().run(["definitely-not-a-real-program-4711"])

    assert excinfo.value.hint is not None
    assert "definitely-not-a-real-program-4711" in excinfo.value.context["command"]


@linux_only
def test_run_captures_output_and_feeds_stdin() -> None:
    result = LocalLinuxHost().run(["cat"], stdin=b"hello", capture=True)

    assert result.ok
    assert result.stdout == b"hello"


def test_mount_builds_bind_command(monkeypatch: pytest.MonkeyPatch) -> None:
    host = LocalLinuxHost()
    calls: list[list[str]] = []

    def fake_run(argv, **kwargs):
        calls.append(list(argv))
        return CommandResult(argv=tuple(argv), returncode=0)

    monkeypatch.setattr(LocalLinuxHost, "run", lambda self, argv, **kw: fake_run(argv, **kw))

    host.mount("none", Path("/alpine/proc"), fstype="proc")
    host.mount("/sys", Path("/alpine/sys"), bind=True, recursive=True)
    host.mount("/home/ci", Path("/alpine/home/ci"), bind=True)
    host.make_private(Path("/alpine/sys"), recursive=True)

    assert calls == [
        ["mount", "-v", "-t", "proc", "none", "/alpine/proc"],
        ["mount", "-v", "--rbind", "/sys", "/alpine/sys"],
        ["mount", "-v", "--bind", "/home/ci", "/alpine/home/ci"],
        ["mount", "--make-rprivate", "/alpine/sys"],
    ]


def test_mount_failure_raises_mount_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        LocalLinuxHost,
        "run",
        lambda self, argv, **kw: CommandResult(argv=tuple(argv), returncode=32, stderr=b"denied"),
    )

    with pytest.raises(MountError) as excinfo:
        LocalLinuxHost().mount("/dev", Path("/alpine/dev"), bind=True, recursive=True)

    assert excinfo.value.context["returncode"] == "32"
    assert excinfo.value.context["stderr"] == "denied"


@linux_only
def test_run_inherits_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALPINE_CHROOT_MARK", "inherited")

    result = LocalLinuxHost().run(["sh", "-c", 'printf %s "$ALPINE_CHROOT_MARK"'], capture=True)

    assert result.stdout == b"inherited"
    with pytest.raises(TypeError):
        LocalLinuxHost().run(["true"], env={})  # type: ignore[call-arg]
