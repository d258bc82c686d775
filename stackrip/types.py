"""
types.py
Dataclasses used across modules: Config, Stack, StackResult.

These are intentionally lightweight, serializable, and stable for logging.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any


class StackripError(Exception):
    """Base class for errors raised by stackrip."""


class DiscoveryError(StackripError):
    """Stacks could not be listed from the API or the Portainer database."""


class CopyError(StackripError):
    """A compose file could not be copied and verified."""


@dataclass
class Config:
    # portainer
    source: str = "auto"
    portainer_url: str = "https://portainer.example:9443"
    api_key: str = ""
    api_key_header: str = "X-API-Key"
    verify_tls: bool = False
    http_timeout_sec: int = 30
    volume: str = "portainer_data"
    db_name: str = "portainer.db"
    db_file: Optional[Path] = None
    # backup
    backup_dir: Optional[Path] = None
    simple_mode: bool = False
    simple_prefix: str = "stack_"
    use_timestamps: bool = True
    timestamp_fmt: str = "_%Y-%m-%d_%H%M%S"
    backup_envs: bool = False
    keep_count: int = 7
    min_free_bytes: int = 10485760
    dry_run: bool = False
    # docker
    image: str = "alpine:3.19"
    compose_dir_prefix: str = "/data/compose"
    compose_candidates: List[str] = field(
        default_factory=lambda: ["docker-compose.yml", "docker-compose.yaml"]
    )
    container_data_mount: str = "/data"
    container_backup_mount: str = "/backups"
    # retry
    http_retries: int = 3
    http_backoff_sec: float = 5
    docker_retries: int = 2
    docker_backoff_sec: float = 5
    # logging
    log_file: str = "/var/log/portainer_backup.log"
    log_max_bytes: int = 5242880
    log_level: str = "INFO"
    # output
    report: bool = False
    report_compact: bool = False
    show_changes: bool = False
    run_summary_dir: Optional[Path] = None


@dataclass
class Stack:
    id: int
    name: str
    project_path: Optional[str]
    entry_point: Optional[str]
    env: List[Any]
    raw: Dict[str, Any]

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> Optional["Stack"]:
        """Build a Stack from a Portainer stack object; None when it has no Id."""
        sid = obj.get("Id", obj.get("id"))
        if sid is None or sid == "":
            return None
        try:
            sid = int(sid)
        except (TypeError, ValueError):
            return None
        name = obj.get("Name", obj.get("name")) or f"stack_{sid}"
        return cls(
            id=sid,
            name=str(name),
            project_path=obj.get("ProjectPath") or None,
            entry_point=obj.get("EntryPoint") or None,
            env=list(obj.get("Env") or []),
            raw=obj,
        )


@dataclass
class StackResult:
    stack_id: int
    name: str
    base: str
    status: str
    duration_sec: float = 0.0
    compose_path: Optional[str] = None
    size_bytes: int = 0
    checksum: Optional[str] = None
    env_path: Optional[str] = None
    meta_path: Optional[str] = None
    change: Optional[str] = None
    deleted: List[str] = field(default_factory=list)
    error: Optional[str] = None
