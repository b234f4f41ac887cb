"""Install the Alpine base system into the target tree with apk.static."""

from __future__ import annotations

import io
import re
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

from alpine_chroot.config import Configuration
from alpine_chroot.errors import IntegrityError, PackageError
from alpine_chroot.host.base import CommandResult, HostSystem, require_success
from alpine_chroot.keys import (
    ALPINE_KEYS,
    TrustAnchor,
    install_keys,
    missing_signing_keys,
)
from alpine_chroot.observability import StructuredLogger
from alpine_chroot.scripts import ENTER_SCRIPT_NAME, setup_script

BASE_PACKAGES = ("alpine-baselayout", "apk-tools", "busybox", "busybox-suid", "musl-utils")
RELEASE_PACKAGE = "alpine-release"
RELEASE_ARCHIVE_PACKAGE = "alpine-base"
# alpine-release exists as a standalone package (without alpine-base's openrc
# dependency chain) starting with this release.
RELEASE_PACKAGE_MIN_VERSION = (3, 17)
ROLLING_BRANCHES = frozenset({"edge", "latest-stable"})
HOST_RESOLV_CONF = Path("/etc/resolv.conf")

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)(?:\.\d+)?")


def release_package_available(branch: str) -> bool:
    """Return whether *branch* ships the standalone alpine-release package."""
    if branch in ROLLING_BRANCHES:
        return True
    match = _VERSION_RE.fullmatch(branch)
    if match is None:
        return True
    return (int(match.group(1)), int(match.group(2))) >= RELEASE_PACKAGE_MIN_VERSION


@dataclass(slots=True)
class PackageBootstrapper:
    host: HostSystem
    apk: Path
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    anchors: tuple[TrustAnchor, ...] = ALPINE_KEYS
    resolv_conf: Path = HOST_RESOLV_CONF
    index_refreshed: bool = False

    def bootstrap(self, target_dir: Path, config: Configuration) -> None:
        self.require_signing_keys(config.arch or self.host.machine())
        self.write_repositories(target_dir, config)
        self.install_keys(target_dir)
        self.copy_resolv_conf(target_dir)
        self.install_base(target_dir, arch=config.arch)
        self.install_release_files(target_dir, config)

    def require_signing_keys(self, arch: str) -> None:
        """Fail before apk runs when the index of *arch* cannot be verified."""
        missing = missing_signing_keys(arch, self.anchors)
        if missing:
            raise IntegrityError(
                f"No trust anchor for the {arch} package signing keys.",
                hint="Add the missing alpine-keys public keys to ALPINE_KEYS.",
                context={"arch": arch, "missing": " ".join(missing)},
            )

    def write_repositories(self, target_dir: Path, config: Configuration) -> Path:
        repositories = target_dir / "etc" / "apk" / "repositories"
        repositories.parent.mkdir(parents=True, exist_ok=True)
        lines = "".join(f"{uri}\n" for uri in config.repositories)
        repositories.write_text(lines, encoding="utf-8")
        return repositories

    def install_keys(self, target_dir: Path) -> list[Path]:
        return install_keys(target_dir / "etc" / "apk" / "keys", self.anchors)

    def copy_resolv_conf(self, target_dir: Path) -> Path:
        dest = target_dir / "etc" / "resolv.conf"
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.resolv_conf, dest)
        return dest

    def install_base(self, target_dir: Path, *, arch: str | None = None) -> None:
        self._log(f"Installing {' '.join(BASE_PACKAGES)} into {target_dir}")
        argv = [*self._apk_prefix(target_dir), "--initdb"]
        if arch:
            argv.extend(["--arch", arch])
        argv.extend(["add", *BASE_PACKAGES])
        self._apk(argv, message="Failed to install the Alpine base system.")

    def install_release_files(self, target_dir: Path, config: Configuration) -> None:
        """Provide /etc/alpine-release, /etc/os-release and friends.

        Older branches only carry these files in alpine-base, which drags in
        openrc, so only its ``etc/`` members are extracted there.
        """
        if release_package_available(config.branch):
            self._apk(
                [*self._apk_prefix(target_dir), "add", RELEASE_PACKAGE],
                message=f"Failed to install {RELEASE_PACKAGE}.",
            )
            return
        self._log(f"Extracting release files from {RELEASE_ARCHIVE_PACKAGE}")
        result = self._apk(
            [*self._apk_prefix(target_dir), "fetch", "--stdout", RELEASE_ARCHIVE_PACKAGE],
            message=f"Failed to fetch {RELEASE_ARCHIVE_PACKAGE}.",
            capture=True,
        )
        extract_etc(result.stdout, target_dir)

    def install_packages(self, target_dir: Path, config: Configuration) -> None:
        """Finish the setup inside the chroot through the generated enter script."""
        self._log(f"Setting up Alpine: {' '.join(config.packages) or 'no extra packages'}")
        script = setup_script(config).render()
        require_success(
            self.host.run([str(target_dir / ENTER_SCRIPT_NAME)], stdin=script.encode("utf-8")),
            error=PackageError,
            message="Failed to install packages inside the chroot.",
            context={"packages": " ".join(config.packages)},
        )

    def _apk_prefix(self, target_dir: Path) -> list[str]:
        prefix = [str(self.apk), "--root", str(target_dir), "--no-progress"]
        if not self.index_refreshed:
            prefix.append("--update-cache")
        return prefix

    def _apk(self, argv: list[str], *, message: str, capture: bool = False) -> CommandResult:
        result = require_success(
            self.host.run(argv, capture=capture),
            error=PackageError,
            message=message,
            hint="Check the mirror, branch and architecture settings.",
        )
        self.index_refreshed = True
        return result

    def _log(self, message: str) -> None:
        self.logger.log(operation="bootstrap", component="packages", message=message)


def extract_etc(archive: bytes, target_dir: Path) -> list[str]:
    """Extract the ``etc/`` members of an apk archive into *target_dir*."""
    extracted: list[str] = []
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
            members = [member for member in tar.getmembers() if member.name.startswith("etc/")]
            tar.extractall(target_dir, members=members, filter="data")
            extracted = [member.name for member in members]
    except (tarfile.TarError, OSError) as exc:
        raise PackageError(
            f"Failed to extract release files from {RELEASE_ARCHIVE_PACKAGE}.",
            context={"target_dir": str(target_dir), "error": str(exc)},
        ) from exc
    return extracted


__all__ = [
    "BASE_PACKAGES",
    "RELEASE_PACKAGE_MIN_VERSION",
    "PackageBootstrapper",
    "extract_etc",
    "release_package_available",
]
