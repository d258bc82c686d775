"""
util.py
Cross-cutting utilities:
- Process execution (list of args) with dry-run support
- Tool checks (docker must be on PATH)
- Small helpers: time, directories, JSON writing, checksums, free space
"""

from __future__ import annotations
import hashlib, json, logging, os, shlex, shutil, subprocess
from datetime import datetime
from pathlib import Path

log = logging.getLogger(__name__)

REQUIRED_TOOLS = {
    "docker": "docker is not installed or not in PATH",
}


def run(cmd: list[str], capture=False, dry=False):
    """
    Execute a command given as a list of arguments.
    - Returns (rc, output_str). Captured output merges stderr into stdout.
    - With dry=True the command is only logged.
    """
    if dry:
        log.info("DRY RUN: would run %s", " ".join(shlex.quote(c) for c in cmd))
        return 0, ""
    try:
        if capture:
            out = subprocess.check_output(cmd, stderr=subprocess.STDOUT)
            return 0, out.decode("utf-8", "replace")
        else:
            rc = subprocess.call(cmd)
            return rc, ""
    except subprocess.CalledProcessError as e:
        return e.returncode, e.output.decode("utf-8", "replace") if e.output else ""
    except FileNotFoundError as e:
        return 127, str(e)


def which_quiet(name: str) -> bool:
    """Check if command exists silently."""
    return bool(shutil.which(name))


def missing_tools() -> list[str]:
    """Return error messages for every required tool that is not on PATH."""
    return [msg for tool, msg in REQUIRED_TOOLS.items() if not which_quiet(tool)]


def local_datestr(fmt, now: datetime | None = None):
    return (now or datetime.now()).strftime(fmt)


def iso_now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def ensure_dir(p: Path):
    """Create directory with better error reporting."""
    try:
        p.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        raise PermissionError(f"Cannot create directory {p} - insufficient permissions")
    except OSError as e:
        raise OSError(f"Cannot create directory {p}: {e}")


def write_json(path: Path, obj, mode: int | None = None):
    ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, indent=2, sort_keys=True))
    if mode is not None:
        os.chmod(tmp, mode)
    tmp.replace(path)


def write_text_atomic(path: Path, text: str):
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text)
    tmp.replace(path)


def write_private(path: Path, text: str):
    """Write text readable by the owner only (env files carry secrets)."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(text)
    os.chmod(tmp, 0o600)
    tmp.replace(path)


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(1 << 20), b""):
            h.update(block)
    return h.hexdigest()


def free_bytes(path: Path) -> int:
    return shutil.disk_usage(path).free


def human_size(n: int) -> str:
    size = float(n)
    for unit in ("B", "K", "M", "G"):
        if size < 1024 or unit == "G":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"
