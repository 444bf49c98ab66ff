"""Output helpers for the Quokka CLI."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from pydantic import BaseModel


def _default_serializer(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def emit(data: Any, fmt: str, stream: TextIO | None = None) -> None:
    if fmt == "json":
        rendered = json.dumps(data, indent=2, default=_default_serializer)
    elif fmt == "md":
        rendered = _to_markdown(data)
    elif fmt == "table":
        rendered = _to_table(data)
    else:
        raise ValueError(f"Unsupported format: {fmt}")
    print(rendered, file=stream or sys.stdout)


def _to_markdown(data: Any) -> str:
    if isinstance(data, dict):
        lines = ["| Key | Value |", "| --- | --- |"]
        for key, value in data.items():
            lines.append(f"| {key} | {_flatten(value)} |")
        return "\n".join(lines)
    return str(data)


def _to_table(data: Any) -> str:
    if isinstance(data, dict):
        width = max(len(str(key)) for key in data.keys()) if data else 0
        return "\n".join(f"{str(key).ljust(width)} : {_flatten(value)}" for key, value in data.items())
    return str(data)


def _flatten(value: Any) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{key}={item}" for key, item in value.items())
    if value is None:
        return ""
    return str(value)


__all__ = ["emit"]
