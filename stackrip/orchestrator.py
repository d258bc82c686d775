"""
orchestrator.py
Coordinates the end-to-end flow, one stack at a time:
  - Check tools and the backup directory
  - Discover stacks (API or portainer.db)
  - For each stack:
      copy compose (verified, retried) -> compare -> env/metadata -> rotate
  - Report totals and write the optional JSON run summary
Per-stack failures are logged and counted; they do not stop the run.
"""

from __future__ import annotations
import logging, time
from pathlib import Path
from typing import List, Optional
from .types import Config, Stack, StackResult, StackripError, DiscoveryError
from .util import ensure_dir, free_bytes, iso_now, missing_tools, run, write_text_atomic
from .config import resolve_source
from .naming import base_filename, run_paths, run_token
from .discover import PortainerClient, discover_stacks
from .copier import copy_command, copy_compose
from .artifacts import write_env_file, write_metadata
from .changes import CHANGED, compare, snapshot_previous
from .rotation import rotate
from .report import build_summary, compact_line, print_report, write_run_summary

log = logging.getLogger(__name__)


def _stack_json(stack: Stack, source: str, client: Optional[PortainerClient]) -> Optional[dict]:
    """Full stack object for env/metadata backup: API detail, or the db record."""
    if source != "api" or client is None:
        return stack.raw
    try:
        return client.stack_detail(stack.id)
    except DiscoveryError as e:
        log.warning("could not fetch stack JSON for %s; skipping env backup (%s)", stack.id, e)
        return None


def _dry_run_one(cfg: Config, stack: Stack, result: StackResult, paths) -> StackResult:
    log.info("DRY RUN: would create directory '%s'", paths.stack_dir)
    log.info("DRY RUN: would copy compose file to %s", paths.compose)
    run(copy_command(stack, cfg, paths.base, paths.compose), dry=True)
    if cfg.backup_envs:
        log.info("DRY RUN: would fetch stack JSON and extract env variables to %s", paths.env)
    if cfg.keep_count > 0:
        log.info("DRY RUN: would perform rotation in %s (keep %d runs)", paths.stack_dir, cfg.keep_count)
        result.deleted = [str(p) for p in rotate(paths.stack_dir, paths.base, cfg.keep_count, dry=True)]
    result.status = "dry_run"
    return result


def process_one(
    cfg: Config, stack: Stack, token: str, source: str, client: Optional[PortainerClient] = None
) -> StackResult:
    base = base_filename(stack, cfg)
    paths = run_paths(Path(cfg.backup_dir), base, token)
    result = StackResult(stack.id, stack.name, base, "failed", compose_path=str(paths.compose))
    started = time.time()
    log.info("Backing up stack id=%s name='%s' -> %s", stack.id, stack.name, paths.compose)
    try:
        if cfg.dry_run:
            return _dry_run_one(cfg, stack, result, paths)

        ensure_dir(paths.stack_dir)

        if cfg.min_free_bytes > 0:
            have = free_bytes(Path(cfg.backup_dir))
            if have < cfg.min_free_bytes:
                result.status = "skipped"
                result.error = (
                    f"insufficient free space in {cfg.backup_dir} "
                    f"(have {have} < need {cfg.min_free_bytes})"
                )
                log.error("%s. Skipping %s", result.error, stack.id)
                return result

        previous = snapshot_previous(paths.stack_dir, base, paths.compose) if cfg.show_changes else None

        outcome = copy_compose(stack, cfg, base, paths.compose)
        result.size_bytes = outcome.size
        result.checksum = outcome.checksum
        log.info("OK: wrote %s", paths.compose)

        if cfg.show_changes:
            current = paths.compose.read_text(errors="replace")
            change = compare(previous, current, label=base)
            result.change = change.label()
            log.info("changes for %s: %s", stack.name, result.change)
            if change.status == CHANGED:
                for line in change.diff:
                    log.info("  %s", line)
                write_text_atomic(paths.diff, "\n".join(change.diff) + "\n")

        if cfg.backup_envs:
            stack_json = _stack_json(stack, source, client)
            if stack_json is not None:
                result.meta_path = str(write_metadata(paths.meta, stack_json))
                env = stack_json.get("Env", stack_json.get("env")) or []
                env_path = write_env_file(paths.env, env)
                if env_path is None:
                    log.info("stack %s has no environment variables", stack.id)
                else:
                    result.env_path = str(env_path)

        if cfg.keep_count > 0:
            result.deleted = [str(p) for p in rotate(paths.stack_dir, base, cfg.keep_count)]

        result.status = "ok"
        return result
    except StackripError as e:
        result.error = str(e)
        log.error("%s", e)
        return result
    except Exception as e:
        result.error = str(e)
        log.error("stack '%s' (id=%s) failed: %s", stack.name, stack.id, e)
        return result
    finally:
        result.duration_sec = round(time.time() - started, 2)


def run_plan(cfg: Config, client: Optional[PortainerClient] = None) -> int:
    log.info("===== Portainer stacks backup started: %s =====", iso_now())

    missing = missing_tools()
    if missing:
        for msg in missing:
            log.error("%s", msg)
        return 1

    if cfg.dry_run:
        log.info("DRY RUN MODE: No files will be created, modified, or deleted")
    else:
        try:
            ensure_dir(Path(cfg.backup_dir))
        except OSError as e:
            log.error("cannot create backup directory '%s': %s", cfg.backup_dir, e)
            return 1

    source = resolve_source(cfg)
    if source == "api" and client is None:
        client = PortainerClient(cfg)

    start = time.time()
    started = iso_now()
    try:
        stacks = discover_stacks(cfg, source, client)
    except DiscoveryError as e:
        log.error("%s", e)
        return 1
    if not stacks:
        log.warning("no stacks found (source: %s)", source)

    token = run_token(cfg)
    results: List[StackResult] = [process_one(cfg, st, token, source, client) for st in stacks]

    failed = [r for r in results if r.status in ("failed", "skipped")]
    if failed:
        log.warning("%d stack(s) failed or were skipped: %s", len(failed), ", ".join(r.name for r in failed))
    log.info("%s", compact_line(results))

    if cfg.report:
        print_report(results)
    elif cfg.report_compact:
        print(compact_line(results))

    if cfg.run_summary_dir and not cfg.dry_run:
        try:
            path = write_run_summary(Path(cfg.run_summary_dir), build_summary(results, source, started, time.time() - start))
            log.info("run summary written to %s", path)
        except OSError as e:
            log.warning("cannot write run summary to %s: %s", cfg.run_summary_dir, e)

    log.info("===== Portainer stacks backup finished: %s =====", iso_now())
    return 0
