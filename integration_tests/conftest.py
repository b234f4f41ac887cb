"""Shared helpers for integration tests.

These tests provision a real chroot. They run only as root on Linux and
only when ``ALPINE_CHROOT_E2E=1`` and ``APK_TOOLS_SHA256`` are set.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def snapshot_tree(root: Path, *, depth: int = 1) -> set[str]:
    """Return the relative paths under *root* down to *depth* levels."""
    found: set[str] = set()
    for path in root.rglob("*"):
        relative = path.relative_to(root)
        if len(relative.parts) <= depth:
            found.add(str(relative))
    return found


@pytest.fixture
def e2e_environ(tmp_path: Path) -> dict[str, str]:
    if not sys.platform.startswith("linux") or os.geteuid() != 0:
        pytest.skip("End-to-end provisioning needs root on Linux.")
    if os.environ.get("ALPINE_CHROOT_E2E") != "1" or not os.environ.get("APK_TOOLS_SHA256"):
        pytest.skip("Set ALPINE_CHROOT_E2E=1 and APK_TOOLS_SHA256 to run.")
    environ = dict(os.environ)
    environ["CHROOT_DIR"] = str(tmp_path / "alpine")
    environ["TEMP_DIR"] = str(tmp_path / "tmp")
    return environ
