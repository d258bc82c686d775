"""
rotation.py
Keep the newest N backup runs per stack.

A run is the set of files <base><run_id><ext> in the stack directory, with
ext one of .yml/.env/.stack.json/.diff. Runs are ordered by the newest mtime
among their files (ties: run id, descending) and the oldest beyond
keep_count are deleted.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from .naming import RUN_EXTS

log = logging.getLogger(__name__)


def run_id_of(filename: str, base: str) -> Optional[str]:
    """Return the run id embedded in a backup file name, or None if it is not one."""
    if not filename.startswith(base):
        return None
    rest = filename[len(base):]
    for ext in RUN_EXTS:
        if rest.endswith(ext):
            return rest[: -len(ext)]
    return None


def group_runs(stack_dir: Path, base: str) -> Dict[str, List[Path]]:
    groups: Dict[str, List[Path]] = {}
    if not stack_dir.is_dir():
        return groups
    for f in stack_dir.iterdir():
        if not f.is_file():
            continue
        rid = run_id_of(f.name, base)
        if rid is None:
            continue
        groups.setdefault(rid, []).append(f)
    return groups


def _newest_mtime(files: List[Path]) -> float:
    mt = 0.0
    for f in files:
        try:
            mt = max(mt, f.stat().st_mtime)
        except OSError:
            pass
    return mt


def plan_rotation(stack_dir: Path, base: str, keep: int) -> List[Tuple[str, List[Path]]]:
    """Return the (run_id, files) groups that fall outside the newest `keep` runs."""
    if keep <= 0:
        return []
    groups = group_runs(stack_dir, base)
    ordered = sorted(
        groups.items(), key=lambda kv: (_newest_mtime(kv[1]), kv[0]), reverse=True
    )
    return ordered[keep:]


def rotate(stack_dir: Path, base: str, keep: int, dry: bool = False) -> List[Path]:
    """Delete (or, in dry-run, report) old runs; returns the affected files."""
    doomed = plan_rotation(stack_dir, base, keep)
    if not doomed:
        return []
    affected: List[Path] = []
    if dry:
        log.info("DRY RUN: would delete %d old backup run(s) in %s:", len(doomed), stack_dir)
    for run_id, files in doomed:
        for f in sorted(files):
            if dry:
                log.info("  would delete: %s", f.name)
                affected.append(f)
                continue
            try:
                f.unlink()
                affected.append(f)
            except OSError as e:
                log.warning("failed to remove old backup file %s: %s", f, e)
    if not dry:
        log.info("rotation removed %d file(s) from %d old run(s) in %s", len(affected), len(doomed), stack_dir)
    return affected
