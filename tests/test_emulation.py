from pathlib import Path, PurePosixPath

import pytest

from alpine_chroot.emulation import AptInstaller, EmulationProvisioner
from alpine_chroot.errors import EmulationError
from alpine_chroot.host.base import CommandResult

from .conftest import FakeHost


def _provisioner(host: FakeHost, tmp_path: Path) -> EmulationProvisioner:
    (tmp_path / "host-bin").mkdir(exist_ok=True)
    (tmp_path / "binfmt").mkdir(exist_ok=True)
    return EmulationProvisioner(
        host,
        emulator_dir=tmp_path / "host-bin",
        binfmt_dir=tmp_path / "binfmt",
    )


def _installs_qemu(emulator: Path):
    def responder(argv: tuple[str, ...], stdin: bytes | None) -> CommandResult | None:
        if argv[:2] == ("apt-get", "install") and "qemu-user-static" in argv:
            emulator.write_bytes(b"\x7fELF qemu")
            emulator.chmod(0o755)
        return None

    return responder


def test_no_emulation_when_arch_unset_or_equivalent(tmp_path: Path, make_config) -> None:
    host = FakeHost(arch="i686")
    provisioner = _provisioner(host, tmp_path)

    assert provisioner.provision(make_config()) is None
    assert provisioner.provision(make_config(arch="x86")) is None
    assert host.commands == []


def test_foreign_arch_installs_host_support_before_copying(tmp_path: Path, make_config) -> None:
    host = FakeHost(arch="x86_64")
    provisioner = _provisioner(host, tmp_path)
    emulator = tmp_path / "host-bin" / "qemu-arm-static"
    host.responders.append(_installs_qemu(emulator))
    config = make_config(arch="armv7")

    staged = provisioner.provision(config)

    assert staged == PurePosixPath("/usr/bin/qemu-arm-static")
    assert host.commands == [
        ("apt-get", "update"),
        ("apt-get", "install", "-y", "qemu-user-static"),
        ("apt-get", "install", "-y", "binfmt-support"),
        ("update-binfmts", "--enable"),
    ]
    copied = config.target_dir / "usr" / "bin" / "qemu-arm-static"
    assert copied.read_bytes() == b"\x7fELF qemu"
    assert copied.stat().st_mode & 0o777 == 0o755


def test_existing_host_support_is_reused(tmp_path: Path, make_config) -> None:
    host = FakeHost()
    provisioner = _provisioner(host, tmp_path)
    emulator = tmp_path / "host-bin" / "qemu-aarch64-static"
    emulator.write_bytes(b"qemu")
    emulator.chmod(0o755)
    (tmp_path / "binfmt" / "qemu-aarch64").write_text("enabled\n", encoding="utf-8")

    staged = provisioner.provision(make_config(arch="aarch64"))

    assert staged == PurePosixPath("/usr/bin/qemu-aarch64-static")
    assert host.commands == []


def test_failed_host_install_is_fatal(tmp_path: Path, make_config) -> None:
    host = FakeHost(failing={"apt-get"})
    provisioner = _provisioner(host, tmp_path)

    with pytest.raises(EmulationError):
        provisioner.provision(make_config(arch="ppc64le"))

    assert not (make_config().target_dir / "usr" / "bin").exists()


def test_missing_interpreter_after_install_is_fatal(tmp_path: Path, make_config) -> None:
    provisioner = _provisioner(FakeHost(), tmp_path)

    with pytest.raises(EmulationError) as excinfo:
        provisioner.provision(make_config(arch="s390x"))

    assert excinfo.value.context["arch"] == "s390x"


def test_apt_installer_updates_index_once() -> None:
    host = FakeHost()
    installer = AptInstaller(host)

    installer.install("a")
    installer.install("b")

    assert host.commands.count(("apt-get", "update")) == 1
    assert installer.index_updated is True
    assert AptInstaller(host).index_updated is False


def test_unset_arch_never_compares_against_host(
    tmp_path: Path, make_config, monkeypatch: pytest.MonkeyPatch
) -> None:
    def compared(target: str, host: str) -> bool:
        raise AssertionError(f"compared {target} with {host}")

    monkeypatch.setattr("alpine_chroot.emulation.needs_emulation", compared)
    host = FakeHost(arch="aarch64")

    assert _provisioner(host, tmp_path).provision(make_config(arch=None)) is None
    assert host.commands == []
