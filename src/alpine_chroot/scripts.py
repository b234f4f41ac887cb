"""Structured generation of the enter-chroot and destroy scripts.

A script is an ordered tuple of step values. Configured values (paths,
patterns, user names, packages) only ever reach the output through
``shlex.quote``; ``Line`` steps carry fixed protocol text.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from alpine_chroot.config import Configuration
from alpine_chroot.mounts import MountBinding, binding_plan

ENTER_SCRIPT_NAME = "enter-chroot"
DESTROY_SCRIPT_NAME = "destroy"
ENV_FILE_NAME = "env.sh"
MOUNTS_TABLE = "/proc/mounts"

_INDENT = "    "
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SNAPSHOT_SED = r'''export | sed -En "s/^[^=]+ ${ENV_FILTER_REGEX}=('.*'|\".*\")\$/export \1=\2/p"'''


@dataclass(frozen=True, slots=True)
class Line:
    text: str

    def render(self) -> list[str]:
        return [self.text]


@dataclass(frozen=True, slots=True)
class Blank:
    def render(self) -> list[str]:
        return [""]


@dataclass(frozen=True, slots=True)
class Assign:
    name: str
    value: str
    export: bool = False

    def __post_init__(self) -> None:
        if not _NAME_RE.fullmatch(self.name):
            raise ValueError(f"invalid shell variable name: {self.name!r}")

    def render(self) -> list[str]:
        prefix = "export " if self.export else ""
        return [f"{prefix}{self.name}={shlex.quote(self.value)}"]


@dataclass(frozen=True, slots=True)
class Command:
    argv: tuple[str, ...]
    sudo: bool = False

    def render(self) -> list[str]:
        rendered = shlex.join(self.argv)
        return [f"$_sudo {rendered}" if self.sudo else rendered]


@dataclass(frozen=True, slots=True)
class EnsureMount:
    """Mount a binding unless its target is already a mount point."""

    binding: MountBinding

    def render(self) -> list[str]:
        binding = self.binding
        target = shlex.quote(str(binding.target))
        conditions = [f"[ {test} {shlex.quote(path)} ]" for test, path in binding.guards]
        conditions.append(f"! mountpoint -q {target}")
        body: list[str] = []
        if binding.guards:
            body.append(f"$_sudo mkdir -p {target}")
        if binding.fstype is not None:
            body.append(
                f"$_sudo mount -t {shlex.quote(binding.fstype)} "
                f"{shlex.quote(binding.source)} {target}"
            )
        else:
            flag = "--rbind" if binding.recursive else "--bind"
            body.append(f"$_sudo mount {flag} {shlex.quote(binding.source)} {target}")
        if binding.private:
            flag = "--make-rprivate" if binding.recursive else "--make-private"
            body.append(f"$_sudo mount {flag} {target}")
        return [
            f"if {' && '.join(conditions)}; then",
            *(_INDENT + line for line in body),
            "fi",
        ]


@dataclass(frozen=True, slots=True)
class SnapshotEnvironment:
    """Write exported variables whose names match ``$ENV_FILTER_REGEX`` to a file.

    ``export`` prints ``export NAME='value'`` (or ``declare -x`` in bash); the
    sed expression rewrites matching entries to plain ``export`` lines.
    """

    dest_var: str = "tmpfile"

    def render(self) -> list[str]:
        if not _NAME_RE.fullmatch(self.dest_var):
            raise ValueError(f"invalid shell variable name: {self.dest_var!r}")
        return [
            f'chmod 644 "${self.dest_var}"',
            _SNAPSHOT_SED + f' > "${self.dest_var}" || true',
        ]


@dataclass(frozen=True, slots=True)
class UnmountAll:
    """Unmount every mount point at or below ``$SCRIPT_DIR``, deepest first."""

    mounts_table: str = MOUNTS_TABLE
    unmount: str = "$_sudo umount -fn"

    def render(self) -> list[str]:
        awk_program = "$2 == dir || index($2, dir \"/\") == 1 { print $2 }"
        return [
            f'awk -v dir="$SCRIPT_DIR" {shlex.quote(awk_program)} '
            f'{shlex.quote(self.mounts_table)} \\',
            "    | LC_ALL=C sort -r | while read -r path; do",
            _INDENT + 'echo "Unmounting $path" >&2',
            _INDENT + f'{self.unmount} "$path" || exit 1',
            "done",
        ]


Step = Line | Blank | Assign | Command | EnsureMount | SnapshotEnvironment | UnmountAll


@dataclass(frozen=True, slots=True)
class Script:
    steps: tuple[Step, ...]
    shebang: str | None = "#!/bin/sh"

    def render(self) -> str:
        lines: list[str] = [self.shebang] if self.shebang else []
        for step in self.steps:
            lines.extend(step.render())
        return "\n".join(lines) + "\n"


def env_filter_regex(patterns: Iterable[str]) -> str:
    """Alternate *patterns* into a single extended regular expression."""
    return "(" + "|".join(patterns) + ")"


def filter_environment(environ: Mapping[str, str], patterns: Iterable[str]) -> dict[str, str]:
    """Select the variables the enter script carries into the chroot."""
    regex = re.compile(env_filter_regex(patterns))
    return {name: value for name, value in environ.items() if regex.fullmatch(name)}


_ENTER_PROLOGUE = (
    Blank(),
    Line("user='root'"),
    Line("if [ $# -ge 2 ] && [ \"$1\" = '-u' ]; then"),
    Line(_INDENT + 'user="$2"; shift 2'),
    Line("fi"),
    Line('oldpwd="$(pwd)"'),
    Line("[ \"$(id -u)\" -eq 0 ] || _sudo='sudo'"),
    Blank(),
    Line('tmpfile="$(mktemp)"'),
)

_CHROOT_SHELL = '. /etc/profile; . /env.sh; cd "$1" 2>/dev/null; shift; "$@"'


def enter_script(config: Configuration, emulator: PurePosixPath | None = None) -> Script:
    """Build the script that enters the chroot as root or ``-u USER``."""
    steps: list[Step] = [
        Line("set -e"),
        Blank(),
        Assign("CHROOT_DIR", str(config.target_dir)),
        Assign("ENV_FILTER_REGEX", env_filter_regex(config.keep_vars)),
    ]
    if emulator is not None:
        steps.append(Assign("QEMU_EMULATOR", str(emulator), export=True))
    steps.extend(_ENTER_PROLOGUE)
    steps.append(SnapshotEnvironment())
    steps.extend([Blank(), Line('cd "$CHROOT_DIR"')])
    plan = binding_plan(config.target_dir, config.bind_dir)
    steps.extend(EnsureMount(binding) for binding in plan)
    steps.extend(
        [
            Blank(),
            Line(f'$_sudo mv "$tmpfile" {ENV_FILE_NAME}'),
            Line("[ $# -gt 0 ] || set -- sh"),
            Line(
                'exec $_sudo chroot . /usr/bin/env -i su -l "$user" \\\n'
                f"{_INDENT}sh -c {shlex.quote(_CHROOT_SHELL)} \\\n"
                f'{_INDENT}-- "$oldpwd" "$@"'
            ),
        ]
    )
    return Script(steps=tuple(steps))


def destroy_script(config: Configuration) -> Script:
    """Build the script that unmounts the chroot and optionally removes it."""
    steps: list[Step] = [
        Line("set -e"),
        Blank(),
        Assign("SCRIPT_DIR", str(config.target_dir)),
        Blank(),
        Line('case "${1:-}" in'),
        Line(_INDENT + "-r | --remove) remove='yes';;"),
        Line(_INDENT + "'') remove='';;"),
        Line(_INDENT + '*) echo "Usage: $0 [-r | --remove]" >&2; exit 1;;'),
        Line("esac"),
        Line("[ \"$(id -u)\" -eq 0 ] || _sudo='sudo'"),
        Blank(),
        UnmountAll(),
        Blank(),
        Line('if [ -n "$remove" ]; then'),
        Line(_INDENT + 'echo "Removing $SCRIPT_DIR" >&2'),
        Line(_INDENT + "if rm --help 2>&1 | grep -Fq -- '--one-file-system'; then"),
        Line(_INDENT * 2 + '$_sudo rm -Rf --one-file-system "$SCRIPT_DIR"'),
        Line(_INDENT + "else"),
        Line(_INDENT * 2 + '$_sudo rm -Rf "$SCRIPT_DIR"'),
        Line(_INDENT + "fi"),
        Line("else"),
        Line(_INDENT + 'echo "To remove the chroot, run: $0 --remove" >&2'),
        Line("fi"),
    ]
    return Script(steps=tuple(steps))


def setup_script(config: Configuration) -> Script:
    """Build the commands fed to the enter script to finish the installation."""
    steps: list[Step] = [
        Line("set -e"),
        Command(("apk", "update")),
    ]
    if config.packages:
        steps.append(Command(("apk", "add", *config.packages)))
    steps.extend(
        [
            Line("if [ -d /etc/sudoers.d ] && [ ! -e /etc/sudoers.d/wheel ]; then"),
            Line(_INDENT + "echo '%wheel ALL=(ALL) NOPASSWD: ALL' > /etc/sudoers.d/wheel"),
            Line("fi"),
        ]
    )
    if config.invoking_user:
        uid = str(config.invoking_uid if config.invoking_uid is not None else 1000)
        adduser = shlex.join(
            ("adduser", "-u", uid, "-G", "users", "-s", "/bin/sh", "-D", config.invoking_user)
        )
        steps.extend(
            [
                Line(f"if ! id -u {shlex.quote(config.invoking_user)} >/dev/null 2>&1; then"),
                Line(_INDENT + adduser),
                Line("fi"),
            ]
        )
    return Script(steps=tuple(steps), shebang=None)


def write_scripts(
    target_dir: Path,
    config: Configuration,
    emulator: PurePosixPath | None = None,
) -> dict[str, Path]:
    """Render both helper scripts into *target_dir* with mode 0755."""
    rendered = {
        ENTER_SCRIPT_NAME: enter_script(config, emulator).render(),
        DESTROY_SCRIPT_NAME: destroy_script(config).render(),
    }
    written: dict[str, Path] = {}
    for name, text in rendered.items():
        path = target_dir / name
        path.write_text(text, encoding="utf-8")
        path.chmod(0o755)
        written[name] = path
    return written


__all__ = [
    "DESTROY_SCRIPT_NAME",
    "ENTER_SCRIPT_NAME",
    "ENV_FILE_NAME",
    "Assign",
    "Blank",
    "Command",
    "EnsureMount",
    "Line",
    "Script",
    "SnapshotEnvironment",
    "Step",
    "UnmountAll",
    "destroy_script",
    "enter_script",
    "env_filter_regex",
    "filter_environment",
    "setup_script",
    "write_scripts",
]
