"""
config.py
Load and validate configuration from TOML (Python 3.11+ tomllib).
Search order:
  1) explicit --config path
  2) adjacent DEFAULT_CONFIG_PATH (checkout root / 'stackrip.toml')
  3) /etc/stackrip.toml
A missing auto-discovered file means built-in defaults. Environment
variables are applied on top of the file, and CLI flags on top of both.
"""

from __future__ import annotations
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping
from .types import Config
from .bundle import DEFAULT_CONFIG_PATH, SYSTEM_CONFIG_PATH

SOURCES = ("auto", "api", "db")


def _gv(d: Dict[str, Any], path: list[str], default=None):
    cur = d
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _load_toml(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _opt_path(value) -> Path | None:
    return Path(value) if value else None


def _candidates(value) -> List[str]:
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def find_config(path_arg: str | None) -> Path | None:
    """Pick the best config path based on CLI arg and availability."""
    if path_arg:
        p = Path(path_arg)
        if not p.exists():
            raise FileNotFoundError(f"Specified config file does not exist: {path_arg}")
        return p

    for p in (Path(DEFAULT_CONFIG_PATH), Path(SYSTEM_CONFIG_PATH)):
        if p.exists():
            return p
    return None


def load_config(path: Path | None) -> Config:
    cfg = _load_toml(path) if path else {}
    d = Config()

    def gv(keys, default=None):
        return _gv(cfg, keys, default)

    return Config(
        source=gv(["portainer", "source"], d.source),
        portainer_url=gv(["portainer", "url"], d.portainer_url),
        api_key=gv(["portainer", "api_key"], d.api_key),
        api_key_header=gv(["portainer", "api_key_header"], d.api_key_header),
        verify_tls=bool(gv(["portainer", "verify_tls"], d.verify_tls)),
        http_timeout_sec=int(gv(["portainer", "timeout_sec"], d.http_timeout_sec)),
        volume=gv(["portainer", "volume"], d.volume),
        db_name=gv(["portainer", "db_name"], d.db_name),
        db_file=_opt_path(gv(["portainer", "db_file"])),
        backup_dir=_opt_path(gv(["backup", "dir"])),
        simple_mode=bool(gv(["backup", "simple"], d.simple_mode)),
        simple_prefix=gv(["backup", "simple_prefix"], d.simple_prefix),
        use_timestamps=bool(gv(["backup", "timestamps"], d.use_timestamps)),
        timestamp_fmt=gv(["backup", "timestamp_fmt"], d.timestamp_fmt),
        backup_envs=bool(gv(["backup", "envs"], d.backup_envs)),
        keep_count=int(gv(["backup", "keep_count"], d.keep_count)),
        min_free_bytes=int(gv(["backup", "min_free_bytes"], d.min_free_bytes)),
        image=gv(["docker", "image"], d.image),
        compose_dir_prefix=gv(["docker", "compose_prefix"], d.compose_dir_prefix),
        compose_candidates=_candidates(
            gv(["docker", "compose_candidates"], d.compose_candidates)
        ),
        container_data_mount=gv(["docker", "data_mount"], d.container_data_mount),
        container_backup_mount=gv(["docker", "backup_mount"], d.container_backup_mount),
        http_retries=int(gv(["retry", "http_retries"], d.http_retries)),
        http_backoff_sec=float(gv(["retry", "http_backoff_sec"], d.http_backoff_sec)),
        docker_retries=int(gv(["retry", "docker_retries"], d.docker_retries)),
        docker_backoff_sec=float(gv(["retry", "docker_backoff_sec"], d.docker_backoff_sec)),
        log_file=gv(["logging", "file"], d.log_file),
        log_max_bytes=int(gv(["logging", "max_bytes"], d.log_max_bytes)),
        log_level=gv(["logging", "level"], d.log_level),
        report=bool(gv(["output", "report"], d.report)),
        report_compact=bool(gv(["output", "report_compact"], d.report_compact)),
        show_changes=bool(gv(["output", "show_changes"], d.show_changes)),
        run_summary_dir=_opt_path(gv(["output", "run_summary_dir"])),
    )


def apply_env(cfg: Config, environ: Mapping[str, str] | None = None) -> Config:
    """Overlay the environment variables the cron wrapper exports."""
    env = os.environ if environ is None else environ
    if env.get("PORTAINER_URL"):
        cfg.portainer_url = env["PORTAINER_URL"]
    if env.get("PORTAINER_API_KEY"):
        cfg.api_key = env["PORTAINER_API_KEY"]
    if env.get("BACKUP_DIR"):
        cfg.backup_dir = Path(env["BACKUP_DIR"])
    if env.get("PORTAINER_VOLUME"):
        cfg.volume = env["PORTAINER_VOLUME"]
    if env.get("KEEP_COUNT"):
        cfg.keep_count = int(env["KEEP_COUNT"])
    if "LOG_FILE" in env:
        cfg.log_file = env["LOG_FILE"]
    return cfg


def resolve_source(cfg: Config) -> str:
    """'auto' means the API when a key is configured, the database otherwise."""
    if cfg.source != "auto":
        return cfg.source
    return "api" if cfg.api_key else "db"


def validate_config(cfg: Config) -> List[str]:
    """Return human-readable problems; an empty list means the config is usable."""
    problems = []
    if cfg.backup_dir is None or not str(cfg.backup_dir).strip():
        problems.append("backup directory is required (-d/--backup-dir)")
    if cfg.source not in SOURCES:
        problems.append(f"source must be one of {', '.join(SOURCES)}, got {cfg.source!r}")
    elif resolve_source(cfg) == "api":
        if not cfg.api_key:
            problems.append("API key is required for the api source (-k/--api-key or PORTAINER_API_KEY)")
        if not cfg.portainer_url:
            problems.append("Portainer URL is required for the api source (-u/--url)")
    for name in (
        "keep_count", "min_free_bytes", "http_retries", "docker_retries",
        "log_max_bytes", "http_backoff_sec", "docker_backoff_sec",
    ):
        if getattr(cfg, name) < 0:
            problems.append(f"{name} must be zero or positive, got {getattr(cfg, name)}")
    if not cfg.compose_candidates:
        problems.append("at least one compose candidate filename is required")
    return problems
