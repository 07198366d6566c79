from __future__ import annotations

import enum
import json
import pathlib
from typing import TYPE_CHECKING, Any

import click

from cowtoggle import config
from cowtoggle.engine import ToggleEngine

if TYPE_CHECKING:
    from cowtoggle.types import ToggleResult

# JSONL schema version for forward compatibility
JSONL_SCHEMA_VERSION = 1


def _json_default(obj: Any) -> Any:  # noqa: ANN401 - json.dumps default requires Any
    """Handle non-standard JSON types in JSONL output."""
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, pathlib.PurePath):
        return str(obj)
    # Let json.dumps raise TypeError for truly unserializable types
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def emit_jsonl(event: object) -> None:
    """Emit a single JSONL event to stdout with flush for streaming."""
    click.echo(json.dumps(event, default=_json_default))


def build_engine() -> ToggleEngine:
    """Build a ToggleEngine from the merged configuration."""
    return ToggleEngine.from_config(config.get_merged_config())


_STATUS_COLORS = {
    "converted": "green",
    "unchanged": None,
    "skipped": "yellow",
    "failed": "red",
}


def format_result_line(result: ToggleResult) -> str:
    """One status line per file: '[status] path: reason'."""
    status = str(result["status"])
    label = click.style(f"[{status.upper()}]", fg=_STATUS_COLORS.get(status))
    return f"{label} {result['path']}: {result['reason']}"
