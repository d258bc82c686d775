"""
discover.py
Stack discovery, from one of two sources:
- Portainer REST API: GET /api/stacks (and /api/stacks/<id> for details)
- Portainer's embedded database (portainer.db), read from a local file or
  streamed out of the Portainer volume by a disposable helper container.
  Stack records are found by scanning the raw bytes for JSON objects
  that start with {"Id":<n>,"Name":"...
Both paths retry with a fixed backoff before giving up.
"""

from __future__ import annotations
import json, logging, re, shlex, time
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import urllib3

from .types import Config, DiscoveryError, Stack
from .util import run

log = logging.getLogger(__name__)

_STACK_START = re.compile(r'\{"Id":\d+,"Name":"')


class PortainerClient:
    """Minimal Portainer API client with retry/backoff."""

    def __init__(self, cfg: Config, session: Optional[requests.Session] = None):
        self.base_url = cfg.portainer_url.rstrip("/")
        self.retries = cfg.http_retries
        self.backoff = cfg.http_backoff_sec
        self.timeout = cfg.http_timeout_sec
        self.verify = cfg.verify_tls
        self.session = session or requests.Session()
        self.session.headers[cfg.api_key_header] = cfg.api_key
        if not self.verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def get_json(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        attempts = self.retries + 1
        last_err = None
        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.get(url, timeout=self.timeout, verify=self.verify)
                resp.raise_for_status()
                return resp.json()
            except requests.RequestException as e:
                # requests' JSONDecodeError is a RequestException as well
                last_err = e
            if attempt < attempts:
                log.warning(
                    "request attempt %d for %s failed (%s), retrying in %ss...",
                    attempt, path, last_err, self.backoff,
                )
                time.sleep(self.backoff)
        raise DiscoveryError(f"GET {path} failed after {attempts} attempts: {last_err}")

    def list_stacks(self) -> List[Dict[str, Any]]:
        data = self.get_json("/api/stacks")
        if not isinstance(data, list):
            raise DiscoveryError("received invalid JSON from Portainer API (expected a list of stacks)")
        return data

    def stack_detail(self, stack_id: int) -> Dict[str, Any]:
        data = self.get_json(f"/api/stacks/{stack_id}")
        if not isinstance(data, dict):
            raise DiscoveryError(f"received invalid JSON for stack {stack_id}")
        return data


def stacks_from_rows(rows: List[Any]) -> List[Stack]:
    """Convert raw stack objects, warning about (and skipping) rows without an Id."""
    stacks = []
    for row in rows:
        st = Stack.from_json(row) if isinstance(row, dict) else None
        if st is None:
            log.warning("skipping stack with missing Id (raw: %s)", json.dumps(row)[:200])
            continue
        stacks.append(st)
    return stacks


def extract_stack_objects(text: str) -> List[Dict[str, Any]]:
    """
    Pull stack records out of raw database text.
    Objects without EntryPoint/ProjectPath (endpoints, users, ...) are ignored;
    a repeated Id keeps its last occurrence.
    """
    decoder = json.JSONDecoder()
    found: Dict[int, Dict[str, Any]] = {}
    for m in _STACK_START.finditer(text):
        try:
            obj, _ = decoder.raw_decode(text, m.start())
        except json.JSONDecodeError:
            continue
        if not isinstance(obj, dict):
            continue
        if "EntryPoint" not in obj and "ProjectPath" not in obj:
            continue
        found[int(obj["Id"])] = obj
    return [found[k] for k in sorted(found)]


def read_db_text(cfg: Config) -> str:
    """Return portainer.db contents from a local file or the Portainer volume."""
    if cfg.db_file:
        try:
            return Path(cfg.db_file).read_bytes().decode("utf-8", "replace")
        except OSError as e:
            raise DiscoveryError(f"cannot read database file {cfg.db_file}: {e}")

    db_path = f"{cfg.container_data_mount}/{cfg.db_name}"
    cmd = [
        "docker", "run", "--rm",
        "-v", f"{cfg.volume}:{cfg.container_data_mount}:ro",
        cfg.image, "cat", db_path,
    ]
    attempts = cfg.docker_retries + 1
    out = ""
    for attempt in range(1, attempts + 1):
        rc, out = run(cmd, capture=True)
        if rc == 0:
            return out
        if attempt < attempts:
            log.warning(
                "reading %s from volume %s failed (exit %d), retrying in %ss...",
                db_path, cfg.volume, rc, cfg.docker_backoff_sec,
            )
            time.sleep(cfg.docker_backoff_sec)
    raise DiscoveryError(
        f"cannot read {db_path} from volume {cfg.volume} after {attempts} attempts: "
        f"{out.strip()[:200] or shlex.join(cmd)}"
    )


def discover_stacks(cfg: Config, source: str, client: Optional[PortainerClient] = None) -> List[Stack]:
    if source == "api":
        client = client or PortainerClient(cfg)
        rows = client.list_stacks()
        log.info("Portainer API returned %d stack(s)", len(rows))
        return stacks_from_rows(rows)
    if source == "db":
        objs = extract_stack_objects(read_db_text(cfg))
        log.info("Portainer database holds %d stack record(s)", len(objs))
        return stacks_from_rows(objs)
    raise DiscoveryError(f"unknown discovery source: {source}")
