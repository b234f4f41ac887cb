"""Provisioning report: what was trusted, written and mounted."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import cbor2


@dataclass(frozen=True, slots=True)
class ProvisionReport:
    target_dir: str
    branch: str
    arch: str | None
    apk_tools_uri: str
    apk_tools_sha256: str
    emulator: str | None = None
    trust_anchors: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)
    mounts: tuple[str, ...] = ()
    schema_version: int = 1

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def write(self, path: str | Path) -> Path:
        """Write the report as CBOR for ``.cbor`` paths and JSON otherwise."""
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.suffix == ".cbor":
            self.to_cbor(output_path)
        else:
            self.to_json(output_path)
        return output_path

    def _payload(self) -> dict[str, object]:
        return {
            "schema_version": self.schema_version,
            "target_dir": self.target_dir,
            "branch": self.branch,
            "arch": self.arch,
            "emulator": self.emulator,
            "apk_tools": {"uri": self.apk_tools_uri, "sha256": self.apk_tools_sha256},
            "trust_anchors": dict(sorted(self.trust_anchors.items())),
            "scripts": dict(sorted(self.scripts.items())),
            "mounts": list(self.mounts),
        }
