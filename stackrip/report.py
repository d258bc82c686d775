"""
report.py
End-of-run output:
- print_report: one row per stack (--report)
- compact_line: a single totals line (--report-compact)
- write_run_summary: run-<ts>.json for monitoring
"""

from __future__ import annotations
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List
from .types import StackResult
from .util import human_size, write_json

STATUSES = ("ok", "failed", "skipped", "dry_run")


def totals(results: List[StackResult]) -> Dict[str, int]:
    t = {s: 0 for s in STATUSES}
    t["stacks"] = len(results)
    t["changed"] = 0
    t["deleted"] = 0
    for r in results:
        t[r.status] = t.get(r.status, 0) + 1
        if r.change and r.change.startswith("changed"):
            t["changed"] += 1
        t["deleted"] += len(r.deleted)
    return t


def compact_line(results: List[StackResult]) -> str:
    t = totals(results)
    return (
        f"stacks={t['stacks']} ok={t['ok']} failed={t['failed']} skipped={t['skipped']} "
        f"dry_run={t['dry_run']} changed={t['changed']} rotated_files={t['deleted']}"
    )


def print_report(results: List[StackResult]) -> None:
    """Human-readable per-stack summary for --report."""
    print(f"{'STACK':<28} {'ID':>5} {'STATUS':<8} {'SIZE':>8} {'CHANGE':<18} DETAIL")
    for r in sorted(results, key=lambda x: (x.name.lower(), x.stack_id)):
        size = human_size(r.size_bytes) if r.size_bytes else "-"
        detail = r.error or (Path(r.compose_path).name if r.compose_path else "")
        print(
            f"{r.name[:28]:<28} {r.stack_id:>5} {r.status:<8} {size:>8} {(r.change or '-'):<18} {detail}"
        )
    print(compact_line(results))


def write_run_summary(directory: Path, summary: dict) -> Path:
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    path = directory / f"run-{ts}.json"
    write_json(path, summary)
    return path


def build_summary(results: List[StackResult], source: str, started: str, duration: float) -> dict:
    return {
        "started": started,
        "duration_sec": round(duration, 2),
        "source": source,
        "totals": totals(results),
        "results": [asdict(r) for r in results],
    }
