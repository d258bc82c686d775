"""
changes.py
Compare a freshly copied compose file against the stack's previous run.
"""

from __future__ import annotations
import difflib, logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from .naming import COMPOSE_EXT
from .rotation import run_id_of

log = logging.getLogger(__name__)

NEW = "new"
CHANGED = "changed"
UNCHANGED = "unchanged"


@dataclass
class Change:
    status: str
    added: int = 0
    removed: int = 0
    diff: List[str] = field(default_factory=list)

    def label(self) -> str:
        if self.status == CHANGED:
            return f"changed (+{self.added}/-{self.removed})"
        return self.status


def previous_compose(stack_dir: Path, base: str, exclude: Path) -> Optional[Path]:
    """Newest earlier compose file of this stack, other than `exclude`."""
    if not stack_dir.is_dir():
        return None
    best, best_mt = None, -1.0
    for f in stack_dir.iterdir():
        if f == exclude or not f.name.endswith(COMPOSE_EXT) or run_id_of(f.name, base) is None:
            continue
        mt = f.stat().st_mtime
        if mt > best_mt or (mt == best_mt and best is not None and f.name > best.name):
            best, best_mt = f, mt
    return best


def snapshot_previous(stack_dir: Path, base: str, target: Path) -> Optional[str]:
    """
    Text of the compose file the new run will be compared to. When the target
    already exists (timestamps disabled) it is about to be overwritten, so it
    is the previous version.
    """
    prev = target if target.exists() else previous_compose(stack_dir, base, target)
    if prev is None:
        return None
    try:
        return prev.read_text(errors="replace")
    except OSError as e:
        log.warning("cannot read previous compose file %s: %s", prev, e)
        return None


def compare(previous: Optional[str], current: str, label: str = "compose") -> Change:
    if previous is None:
        return Change(NEW)
    if previous == current:
        return Change(UNCHANGED)
    diff = list(
        difflib.unified_diff(
            previous.splitlines(), current.splitlines(),
            fromfile=f"{label} (previous)", tofile=f"{label} (current)", lineterm="",
        )
    )
    added = sum(1 for ln in diff if ln.startswith("+") and not ln.startswith("+++"))
    removed = sum(1 for ln in diff if ln.startswith("-") and not ln.startswith("---"))
    return Change(CHANGED, added, removed, diff)
