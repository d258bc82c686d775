"""
copier.py
Copy a stack's compose file out of the Portainer volume:
- Build the POSIX sh snippet that copies the first existing candidate and
  prints "<sha256|NO_CHECKSUM> <size>"
- Run it in a disposable container (volume :ro, backup dir :rw)
- Verify checksum (or size) of the staged copy on the host, retrying with
  backoff, then move it into place
"""

from __future__ import annotations
import logging, posixpath, shlex, time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from .types import Config, CopyError, Stack
from .util import run, sha256_file

log = logging.getLogger(__name__)

NO_CHECKSUM = "NO_CHECKSUM"
EXIT_NOT_FOUND = 2
EXIT_COPY_FAILED = 3
PARTIAL_SUFFIX = ".partial"


@dataclass
class CopyOutcome:
    path: Path
    size: int
    checksum: Optional[str]
    attempts: int


def compose_candidates(stack: Stack, cfg: Config) -> List[str]:
    """In-container paths to try, in order, without duplicates."""
    paths = []
    if stack.project_path and stack.entry_point:
        paths.append(posixpath.join(stack.project_path, stack.entry_point))
    prefix = cfg.compose_dir_prefix.rstrip("/")
    for name in cfg.compose_candidates:
        paths.append(f"{prefix}/{stack.id}/{name}")
    seen = set()
    return [p for p in paths if not (p in seen or seen.add(p))]


def container_script(candidates: List[str], dest: str, stack_id: int) -> str:
    q = shlex.quote
    lines = [
        "set -e",
        "src=''",
        f"for c in {' '.join(q(c) for c in candidates)}; do",
        '  if [ -f "$c" ]; then src="$c"; break; fi',
        "done",
        'if [ -z "$src" ]; then',
        f"  echo {q(f'compose file not found for stack id {stack_id}')} 1>&2",
        f"  exit {EXIT_NOT_FOUND}",
        "fi",
        f'cp "$src" {q(dest)} || exit {EXIT_COPY_FAILED}',
        "size=$(stat -c%s \"$src\" 2>/dev/null || (ls -ln \"$src\" | awk '{print $5}'))",
        "if command -v sha256sum >/dev/null 2>&1; then checksum=$(sha256sum \"$src\" | awk '{print $1}');"
        " elif command -v shasum >/dev/null 2>&1; then checksum=$(shasum -a 256 \"$src\" | awk '{print $1}');"
        f" else checksum={NO_CHECKSUM}; fi",
        'echo "$checksum $size"',
    ]
    return "\n".join(lines) + "\n"


def docker_cmd(cfg: Config, script: str) -> List[str]:
    return [
        "docker", "run", "--rm",
        "-v", f"{cfg.volume}:{cfg.container_data_mount}:ro",
        "-v", f"{Path(cfg.backup_dir).resolve()}:{cfg.container_backup_mount}:rw",
        cfg.image, "sh", "-c", script,
    ]


def parse_report(output: str) -> tuple[Optional[str], Optional[int]]:
    """
    Read "<checksum> <size>" from the last non-empty output line; earlier
    lines may be image pull progress.
    """
    lines = [ln.strip() for ln in output.replace("\r", "").splitlines() if ln.strip()]
    if not lines:
        return None, None
    parts = lines[-1].split()
    checksum = parts[0] if parts else None
    size = None
    if len(parts) > 1:
        try:
            size = int(parts[1])
        except ValueError:
            size = None
    return checksum, size


def verify_copy(target: Path, checksum: Optional[str], size: Optional[int]) -> Optional[str]:
    """Return None when the host file matches, otherwise a mismatch description."""
    try:
        host_size = target.stat().st_size
    except OSError:
        return f"copied file {target} is missing"
    if host_size == 0:
        return f"empty copy at {target}"
    if checksum and checksum != NO_CHECKSUM:
        try:
            host_checksum = sha256_file(target)
        except OSError as e:
            return f"cannot checksum {target}: {e}"
        if host_checksum == checksum:
            return None
        return f"checksum mismatch for {target} (container:{checksum} host:{host_checksum})"
    if size is not None and size == host_size:
        return None
    return f"size mismatch for {target} (container:{size} host:{host_size})"


def partial_path(target: Path) -> Path:
    """Staging name the container writes to; rotation never counts it as a run."""
    return target.with_name(target.name + PARTIAL_SUFFIX)


def copy_command(stack: Stack, cfg: Config, base: str, target: Path) -> List[str]:
    dest = f"{cfg.container_backup_mount}/{base}/{partial_path(target).name}"
    return docker_cmd(cfg, container_script(compose_candidates(stack, cfg), dest, stack.id))


def copy_compose(stack: Stack, cfg: Config, base: str, target: Path) -> CopyOutcome:
    """
    Copy and verify the compose file, retrying; raises CopyError when all
    attempts fail. The container writes a staging file which only replaces
    `target` once verified, so a failed copy leaves nothing behind.
    """
    staged = partial_path(target)
    cmd = copy_command(stack, cfg, base, target)
    attempts = cfg.docker_retries + 1
    last_err = "no attempt made"
    for attempt in range(1, attempts + 1):
        staged.unlink(missing_ok=True)
        rc, out = run(cmd, capture=True)
        if rc == EXIT_NOT_FOUND:
            # exit 2: none of the candidates exist
            staged.unlink(missing_ok=True)
            raise CopyError(out.strip() or f"compose file not found for stack id {stack.id}")
        if rc != 0:
            last_err = f"docker run failed (exit {rc}): {out.strip()}"
            log.warning("%s", last_err)
        else:
            checksum, size = parse_report(out)
            problem = verify_copy(staged, checksum, size)
            if problem is None:
                staged.replace(target)
                if checksum == NO_CHECKSUM:
                    checksum = None
                return CopyOutcome(target, target.stat().st_size, checksum, attempt)
            last_err = problem
            log.warning("%s", problem)
        staged.unlink(missing_ok=True)
        if attempt < attempts:
            log.warning(
                "verification failed for stack %s, retrying in %ss...",
                stack.id, cfg.docker_backoff_sec,
            )
            time.sleep(cfg.docker_backoff_sec)
    raise CopyError(
        f"failed to copy and verify compose file for stack '{stack.name}' (id={stack.id}) "
        f"after {attempts} attempts: {last_err}"
    )
