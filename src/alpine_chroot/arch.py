"""CPU architecture name normalization."""

from __future__ import annotations

import re

_X86_RE = re.compile(r"x86|i[3-6]86")
_ARM_RE = re.compile(r"armhf|armv[4-9]")
_ALPINE_ALIASES = {"arm64": "aarch64", "armv7l": "armv7", "armv8l": "armv7", "armv6l": "armhf"}


def normalize_arch(name: str) -> str:
    """Map architecture synonyms onto the token used by qemu interpreters.

    ``x86`` and ``i386``..``i686`` become ``i386``; ``armhf`` and
    ``armv4``..``armv9`` become ``arm``. Anything else is returned unchanged,
    so the function is idempotent.
    """
    if _X86_RE.fullmatch(name):
        return "i386"
    if _ARM_RE.fullmatch(name):
        return "arm"
    return name


def needs_emulation(arch: str | None, host_arch: str) -> bool:
    if not arch:
        return False
    return normalize_arch(arch) != normalize_arch(host_arch)


def alpine_arch(name: str) -> str:
    """Map a kernel machine name onto the architecture name Alpine publishes under."""
    if _X86_RE.fullmatch(name):
        return "x86"
    return _ALPINE_ALIASES.get(name, name)


__all__ = ["alpine_arch", "needs_emulation", "normalize_arch"]
