"""Checksum-verified retrieval of bootstrap artifacts."""

from .http import (
    CONNECT_TIMEOUT_S,
    CurlTransport,
    DownloadedArtifact,
    Fetcher,
    Transport,
    WgetTransport,
    artifact_name,
    detect_transport,
    file_sha256,
)

__all__ = [
    "CONNECT_TIMEOUT_S",
    "CurlTransport",
    "DownloadedArtifact",
    "Fetcher",
    "Transport",
    "WgetTransport",
    "artifact_name",
    "detect_transport",
    "file_sha256",
]
