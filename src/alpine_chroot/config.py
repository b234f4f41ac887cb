"""Resolved provisioning configuration."""

from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from alpine_chroot.arch import alpine_arch
from alpine_chroot.errors import ValidationError

DEFAULT_BRANCH = "latest-stable"
DEFAULT_TARGET_DIR = Path("/alpine")
DEFAULT_KEEP_VARS = ("ARCH", "CI", "QEMU_EMULATOR", "TRAVIS_.*")
DEFAULT_MIRROR = "http://dl-cdn.alpinelinux.org/alpine"
DEFAULT_PACKAGES = ("build-base", "ca-certificates", "ssl_client")
APK_TOOLS_VERSION = "v2.14.4"
APK_TOOLS_URI_TEMPLATE = (
    "https://gitlab.alpinelinux.org/api/v4/projects/5/packages/generic/"
    "{version}/{arch}/apk.static"
)

_KEEP_VAR_RE = re.compile(r"[A-Za-z0-9_.*+?\[\]-]+")
_SHA256_RE = re.compile(r"[0-9a-f]{64}")
_WORD_RE = re.compile(r"\S+")


@dataclass(frozen=True, slots=True)
class Configuration:
    apk_tools_sha256: str
    temp_dir: Path
    arch: str | None = None
    branch: str = DEFAULT_BRANCH
    target_dir: Path = DEFAULT_TARGET_DIR
    bind_dir: Path | None = None
    keep_vars: tuple[str, ...] = DEFAULT_KEEP_VARS
    mirror: str = DEFAULT_MIRROR
    packages: tuple[str, ...] = DEFAULT_PACKAGES
    extra_repos: tuple[str, ...] = ()
    apk_tools_uri: str = ""
    invoking_user: str | None = None
    invoking_uid: int | None = None
    owns_temp_dir: bool = False
    repositories: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_dir", _resolve_plain(self.target_dir, name="target_dir"))
        if self.bind_dir is not None:
            object.__setattr__(self, "bind_dir", _resolve_plain(self.bind_dir, name="bind_dir"))
        if not self.apk_tools_uri:
            object.__setattr__(self, "apk_tools_uri", default_apk_tools_uri(os.uname().machine))
        if not self.branch or not _WORD_RE.fullmatch(self.branch):
            raise ValidationError(
                "Alpine branch must be a single non-empty word.",
                hint="Use e.g. 'latest-stable', 'edge' or 'v3.19'.",
                context={"branch": self.branch},
            )
        if self.arch is not None and not _WORD_RE.fullmatch(self.arch):
            raise ValidationError(
                "Architecture must be a single word.", context={"arch": self.arch}
            )
        for pattern in self.keep_vars:
            if not _KEEP_VAR_RE.fullmatch(pattern):
                raise ValidationError(
                    f"Invalid environment variable pattern: {pattern!r}.",
                    hint="Patterns may only use letters, digits, '_' and the regex "
                    "characters . * + ? [ ] -.",
                    context={"pattern": pattern},
                )
        for name in (*self.packages, *self.extra_repos):
            if not _WORD_RE.fullmatch(name):
                raise ValidationError(
                    "Package names and repository URIs must not contain whitespace.",
                    context={"value": name},
                )
        if not _SHA256_RE.fullmatch(self.apk_tools_sha256):
            raise ValidationError(
                "apk-tools requires a lowercase hex sha256 digest.",
                hint="Set APK_TOOLS_SHA256 to the digest of the apk.static binary.",
                context={"apk_tools_uri": self.apk_tools_uri},
            )
        mirror = self.mirror.rstrip("/")
        object.__setattr__(self, "mirror", mirror)
        object.__setattr__(
            self,
            "repositories",
            (
                f"{mirror}/{self.branch}/main",
                f"{mirror}/{self.branch}/community",
                *self.extra_repos,
            ),
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> Configuration:
        """Resolve a configuration from the tool's environment variables.

        Keyword *overrides* win over the environment. List-valued variables
        are space separated.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "arch": env.get("ARCH") or None,
            "branch": env.get("ALPINE_BRANCH") or DEFAULT_BRANCH,
            "target_dir": Path(env.get("CHROOT_DIR") or DEFAULT_TARGET_DIR),
            "bind_dir": Path(env["BIND_DIR"]) if env.get("BIND_DIR") else None,
            "keep_vars": _split(env.get("CHROOT_KEEP_VARS"), DEFAULT_KEEP_VARS),
            "mirror": env.get("ALPINE_MIRROR") or DEFAULT_MIRROR,
            "packages": _split(env.get("ALPINE_PACKAGES"), DEFAULT_PACKAGES),
            "extra_repos": _split(env.get("EXTRA_REPOS"), ()),
            "apk_tools_uri": env.get("APK_TOOLS_URI") or "",
            "apk_tools_sha256": env.get("APK_TOOLS_SHA256", ""),
            "invoking_user": env.get("SUDO_USER") or None,
            "invoking_uid": _parse_uid(env.get("SUDO_UID")),
        }
        if env.get("TEMP_DIR"):
            values["temp_dir"] = Path(env["TEMP_DIR"])
        values.update({key: value for key, value in overrides.items() if value is not None})
        if "temp_dir" not in values:
            values["temp_dir"] = Path(tempfile.mkdtemp(prefix="alpine-chroot."))
            values["owns_temp_dir"] = True
        return cls(**values)


def default_apk_tools_uri(host_arch: str) -> str:
    """Return the pinned apk.static URI built for *host_arch*."""
    return APK_TOOLS_URI_TEMPLATE.format(version=APK_TOOLS_VERSION, arch=alpine_arch(host_arch))


def _resolve_plain(path: Path, *, name: str) -> Path:
    # Mount tables list resolved paths, so symlinks are followed here once.
    if not path.is_absolute():
        raise ValidationError(
            f"{name} must be an absolute path.",
            context={name: str(path)},
        )
    resolved = path.resolve()
    if any(char.isspace() for char in str(resolved)):
        raise ValidationError(
            f"{name} must not contain whitespace.",
            context={name: str(resolved)},
        )
    return resolved


def _split(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(value.split())


def _parse_uid(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError("SUDO_UID must be an integer.", context={"SUDO_UID": value}) from exc


__all__ = [
    "APK_TOOLS_URI_TEMPLATE",
    "APK_TOOLS_VERSION",
    "DEFAULT_BRANCH",
    "DEFAULT_KEEP_VARS",
    "DEFAULT_MIRROR",
    "DEFAULT_PACKAGES",
    "DEFAULT_TARGET_DIR",
    "Configuration",
    "default_apk_tools_uri",
]
