"""Alpine package signing keys embedded as trust anchors."""

from __future__ import annotations

import textwrap
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from alpine_chroot.arch import alpine_arch

KEY_FILE_TEMPLATE = "alpine-devel@lists.alpinelinux.org-{id}.rsa.pub"


@dataclass(frozen=True, slots=True)
class TrustAnchor:
    id: str
    body: str

    @property
    def filename(self) -> str:
        return KEY_FILE_TEMPLATE.format(id=self.id)

    def render(self) -> str:
        """Return the key wrapped in its PEM envelope."""
        lines = textwrap.wrap(self.body, 64)
        return "-----BEGIN PUBLIC KEY-----\n" + "\n".join(lines) + "\n-----END PUBLIC KEY-----\n"


ALPINE_KEYS: tuple[TrustAnchor, ...] = (
    TrustAnchor(
        id="4a6a0840",
        body=(
            "MIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEA1yHJxQgsHQREclQu4Ohe"
            "qxTxd1tHcNnvnQTu/UrTky8wWvgXT+jpveroeWWnzmsYlDI93eLI2ORakxb3gA2O"
            "Q0Ry4ws8vhaxLQGC74uQR5+/yYrLuTKydFzuPaS1dK19qJPXB8GMdmFOijnXX4SA"
            "jixuHLe1WW7kZVtjL7nufvpXkWBGjsfrvskdNA/5MfxAeBbqPgaq0QMEfxMAn6/R"
            "L5kNepi/Vr4S39Xvf2DzWkTLEK8pcnjNkt9/aafhWqFVW7m3HCAII6h/qlQNQKSo"
            "GuH34Q8GsFG30izUENV9avY7hSLq7nggsvknlNBZtFUcmGoQrtx3FmyYsIC8/R+B"
            "ywIDAQAB"
        ),
    ),
    TrustAnchor(
        id="5243ef4b",
        body=(
            "MIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEAvNijDxJ8kloskKQpJdx+"
            "mTMVFFUGDoDCbulnhZMJoKNkSuZOzBoFC94omYPtxnIcBdWBGnrm6ncbKRlR+6oy"
            "DO0W7c44uHKCFGFqBhDasdI4RCYP+fcIX/lyMh6MLbOxqS22TwSLhCVjTyJeeH7K"
            "aA7vqk+QSsF4TGbYzQDDpg7+6aAcNzg6InNePaywA6hbT0JXbxnDWsB+2/LLSF2G"
            "mnhJlJrWB1WGjkz23ONIWk85W4S0XB/ewDefd4Ly/zyIciastA7Zqnh7p3Ody6Q0"
            "sS2MJzo7p3os1smGjUF158s6m/JbVh4DN6YIsxwl2OjDOz9R0OycfJSDaBVIGZzg"
            "cQIDAQAB"
        ),
    ),
)


# Keys Alpine signs each architecture's package index with, older key first.
# Every id listed for the target architecture needs a body in ALPINE_KEYS.
SIGNING_KEYS: dict[str, tuple[str, ...]] = {
    "x86_64": ("4a6a0840", "6165ee59"),
    "x86": ("5243ef4b", "61666e3f"),
    "aarch64": ("58199dcc", "616ae350"),
    "armv7": ("524d27bb", "616adfeb"),
    "armhf": ("5261cecb", "616a9724"),
    "ppc64le": ("58cbb476", "616abc23"),
}


def missing_signing_keys(
    arch: str, anchors: Iterable[TrustAnchor] = ALPINE_KEYS
) -> tuple[str, ...]:
    """Return the signing key ids for *arch* that have no embedded anchor.

    Architectures without an entry in :data:`SIGNING_KEYS` are not checked.
    """
    present = {anchor.id for anchor in anchors}
    required = SIGNING_KEYS.get(alpine_arch(arch), ())
    return tuple(key_id for key_id in required if key_id not in present)


def install_keys(dest_dir: str | Path, anchors: Iterable[TrustAnchor] = ALPINE_KEYS) -> list[Path]:
    """Write every trust anchor into *dest_dir* and return the written paths."""
    dest_path = Path(dest_dir)
    dest_path.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for anchor in anchors:
        key_path = dest_path / anchor.filename
        key_path.write_text(anchor.render(), encoding="ascii")
        written.append(key_path)
    return written


__all__ = [
    "ALPINE_KEYS",
    "KEY_FILE_TEMPLATE",
    "SIGNING_KEYS",
    "TrustAnchor",
    "install_keys",
    "missing_signing_keys",
]
