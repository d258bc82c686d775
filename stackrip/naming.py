"""
naming.py
Filesystem-safe names for stack directories and backup run files:
  <backup_dir>/<base>/<base><token>.yml|.env|.stack.json
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from .types import Config, Stack
from .util import local_datestr

_UNSAFE = re.compile(r"[^A-Za-z0-9._ -]")
_UNDERSCORES = re.compile(r"_+")

COMPOSE_EXT = ".yml"
ENV_EXT = ".env"
META_EXT = ".stack.json"
DIFF_EXT = ".diff"
RUN_EXTS = (META_EXT, COMPOSE_EXT, ENV_EXT, DIFF_EXT)


def sanitize_name(name: str, stack_id: int) -> str:
    """Replace unsafe characters with '_', collapse repeats, trim the ends."""
    s = _UNSAFE.sub("_", name or "").replace(" ", "_")
    s = _UNDERSCORES.sub("_", s).strip("_")
    return s or f"stack_{stack_id}"


def base_filename(stack: Stack, cfg: Config) -> str:
    if cfg.simple_mode:
        return f"{cfg.simple_prefix}{stack.id}"
    return sanitize_name(stack.name, stack.id)


def run_token(cfg: Config, now: datetime | None = None) -> str:
    """Timestamp suffix shared by every stack of one run ('' when disabled)."""
    if not cfg.use_timestamps:
        return ""
    return local_datestr(cfg.timestamp_fmt, now)


@dataclass
class RunPaths:
    base: str
    stack_dir: Path
    compose: Path
    env: Path
    meta: Path
    diff: Path


def run_paths(backup_dir: Path, base: str, token: str) -> RunPaths:
    stack_dir = backup_dir / base
    stem = f"{base}{token}"
    return RunPaths(
        base=base,
        stack_dir=stack_dir,
        compose=stack_dir / f"{stem}{COMPOSE_EXT}",
        env=stack_dir / f"{stem}{ENV_EXT}",
        meta=stack_dir / f"{stem}{META_EXT}",
        diff=stack_dir / f"{stem}{DIFF_EXT}",
    )
