"""Persist the installed stack's identity and outputs."""

from __future__ import annotations

import json
from pathlib import Path

from core.models import InstallationRecord


def write_record(record: InstallationRecord, path: Path) -> Path:
    payload = record.model_dump(mode="json", by_alias=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return path


__all__ = ["write_record"]
