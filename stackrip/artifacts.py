"""
artifacts.py
Environment (.env) and metadata (.stack.json) files for a backup run.
Both may hold secrets, so they are written with mode 0600.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
from .util import write_json, write_private


def env_lines(env: List[Any]) -> List[str]:
    """Strings pass through; {name|Name, value|Value} objects become NAME=value."""
    lines = []
    for item in env or []:
        if isinstance(item, str):
            lines.append(item)
        elif isinstance(item, dict):
            name = item.get("name", item.get("Name"))
            if not name:
                continue
            value = item.get("value", item.get("Value"))
            lines.append(f"{name}={'' if value is None else value}")
    return lines


def write_env_file(path: Path, env: List[Any]) -> Optional[Path]:
    """Write the env file; returns None (and writes nothing) when there are no entries."""
    lines = env_lines(env)
    if not lines:
        return None
    write_private(path, "\n".join(lines) + "\n")
    return path


def write_metadata(path: Path, stack_json: Dict[str, Any]) -> Path:
    write_json(path, stack_json, mode=0o600)
    return path
