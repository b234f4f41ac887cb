"""Structured logging and observability helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, TextIO

Level = Literal["info", "warning", "error"]

_PREFIXES: dict[str, str] = {
    "info": "> ",
    "warning": "WARNING: ",
    "error": "ERROR: ",
}


@dataclass(slots=True)
class StructuredLogger:
    """Collects structured records and optionally echoes them to a stream."""

    stream: TextIO | None = None
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        component: str,
        message: str,
        level: Level = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "component": component,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.stream is not None:
            self.stream.write(f"{_PREFIXES[level]}{message}\n")
            self.stream.flush()

    def records_for_component(self, component: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("component") == component]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
