"""Integrity-enforced download through an external HTTP client."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlsplit

from alpine_chroot.errors import IntegrityError, TransportError, ValidationError
from alpine_chroot.host.base import HostSystem, require_success

CONNECT_TIMEOUT_S = 10


@dataclass(frozen=True, slots=True)
class DownloadedArtifact:
    uri: str
    sha256: str
    path: Path


class Transport(Protocol):
    name: str

    def fetch(self, uri: str, dest: Path) -> None:
        """Write the resource at *uri* to *dest*."""


@dataclass(slots=True)
class CurlTransport:
    host: HostSystem
    name: str = "curl"

    def fetch(self, uri: str, dest: Path) -> None:
        argv = ["curl", "--connect-timeout", str(CONNECT_TIMEOUT_S), "-fsSL", "-o", str(dest), uri]
        require_success(
            self.host.run(argv, capture=True),
            error=TransportError,
            message=f"Failed to fetch {uri}.",
            hint="Check the URI and network connectivity, then re-run.",
            context={"transport": self.name},
        )


@dataclass(slots=True)
class WgetTransport:
    host: HostSystem
    name: str = "wget"

    def fetch(self, uri: str, dest: Path) -> None:
        argv = ["wget", "-T", str(CONNECT_TIMEOUT_S), "--no-verbose", "-O", str(dest), uri]
        require_success(
            self.host.run(argv, capture=True),
            error=TransportError,
            message=f"Failed to fetch {uri}.",
            hint="Check the URI and network connectivity, then re-run.",
            context={"transport": self.name},
        )


def detect_transport(host: HostSystem) -> Transport:
    """Pick curl, falling back to wget, based on what the host provides."""
    if host.which("curl"):
        return CurlTransport(host)
    if host.which("wget"):
        return WgetTransport(host)
    raise TransportError(
        "Neither curl nor wget is available.",
        hint="Install curl or wget on the host.",
        context={"operation": "fetch"},
    )


@dataclass(slots=True)
class Fetcher:
    transport: Transport

    def fetch(self, uri: str, dest: Path) -> Path:
        self.transport.fetch(uri, dest)
        return dest

    def download(self, uri: str, *, sha256: str, dest_dir: str | Path) -> DownloadedArtifact:
        """Fetch *uri* into *dest_dir* and verify it against *sha256*.

        A mismatching artifact is deleted before :class:`IntegrityError` is
        raised, so nothing unverified is left at the destination.
        """
        if not sha256:
            raise ValidationError("download() requires a sha256 value.", context={"uri": uri})
        dest_path = Path(dest_dir)
        dest_path.mkdir(parents=True, exist_ok=True)
        artifact_path = dest_path / artifact_name(uri)
        artifact_path.unlink(missing_ok=True)

        try:
            self.fetch(uri, artifact_path)
        except TransportError:
            artifact_path.unlink(missing_ok=True)
            raise

        actual_sha256 = file_sha256(artifact_path)
        if actual_sha256 != sha256.lower():
            artifact_path.unlink(missing_ok=True)
            raise IntegrityError(
                "Downloaded content hash mismatch.",
                hint="Verify the source URI and the expected digest.",
                context={
                    "operation": "download",
                    "uri": uri,
                    "expected": sha256,
                    "actual": actual_sha256,
                },
            )
        return DownloadedArtifact(uri=uri, sha256=actual_sha256, path=artifact_path)


def artifact_name(uri: str) -> str:
    name = unquote(urlsplit(uri).path).rsplit("/", 1)[-1]
    if not name or name in {".", ".."}:
        raise ValidationError("Cannot derive a file name from URI.", context={"uri": uri})
    return name


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()
