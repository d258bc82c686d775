#!/usr/bin/env python3
"""
cli.py
Command-line interface for stackrip.
Parses arguments, loads config (file -> environment -> flags), and invokes
the orchestrator.
"""
from __future__ import annotations
import argparse, sys
from pathlib import Path
from .bundle import DEFAULT_CONFIG_PATH, SYSTEM_CONFIG_PATH
from .config import SOURCES, apply_env, find_config, load_config, validate_config
from .logsetup import setup_logging
from .orchestrator import run_plan
from .types import Config

EPILOG = """
examples:
  stackrip -u https://portainer.local:9443 -k myapikey123 -d /backup/portainer
  stackrip -d /backup/portainer -v portainer_data --source db --backup-envs
  stackrip -u https://portainer.local:9443 -k myapikey123 -d /backup/portainer --dry-run --report
"""


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="stackrip",
        description="stackrip: back up Portainer stacks (compose files, env variables, metadata)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    ap.add_argument(
        "--config",
        default=None,
        help=f"path to stackrip.toml (default: {DEFAULT_CONFIG_PATH} then {SYSTEM_CONFIG_PATH})",
    )
    ap.add_argument("--source", choices=SOURCES, default=None, help="where stacks are discovered (default: auto)")
    ap.add_argument("-u", "--url", dest="portainer_url", help="Portainer URL (e.g. https://portainer.local:9443)")
    ap.add_argument("-k", "--api-key", dest="api_key", help="Portainer API key (or PORTAINER_API_KEY)")
    ap.add_argument("-a", "--api-header", dest="api_key_header", help="API key header name (default: X-API-Key)")
    ap.add_argument("--verify-tls", dest="verify_tls", action="store_true", default=None, help="verify the Portainer TLS certificate")
    ap.add_argument("-v", "--volume", help="Portainer data volume name (default: portainer_data)")
    ap.add_argument("--db-file", dest="db_file", help="read portainer.db from this file instead of the volume")
    ap.add_argument("-d", "--backup-dir", dest="backup_dir", help="backup directory (required)")
    ap.add_argument("-i", "--image", help="helper image for file operations (default: alpine:3.19)")
    ap.add_argument("-s", "--simple", dest="simple_mode", action="store_true", default=None, help="name files by stack id instead of stack name")
    ap.add_argument("-p", "--prefix", dest="simple_prefix", help="simple mode filename prefix (default: stack_)")
    ts = ap.add_mutually_exclusive_group()
    ts.add_argument("-t", "--timestamps", dest="use_timestamps", action="store_true", default=None, help="append a timestamp to filenames (default)")
    ts.add_argument("--no-timestamps", dest="use_timestamps", action="store_false", default=None, help="do not append a timestamp to filenames")
    ap.add_argument("-f", "--timestamp-fmt", dest="timestamp_fmt", help="strftime timestamp suffix (default: _%%Y-%%m-%%d_%%H%%M%%S)")
    ap.add_argument("-e", "--backup-envs", dest="backup_envs", action="store_true", default=None, help="also back up env variables and stack metadata")
    ap.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", default=None, help="show what would be done without making changes")
    ap.add_argument("-c", "--keep-count", dest="keep_count", type=int, help="keep last N backup runs per stack (default: 7, 0 disables)")
    ap.add_argument("-r", "--http-retries", dest="http_retries", type=int, help="API retry attempts (default: 3)")
    ap.add_argument("-b", "--http-backoff", dest="http_backoff_sec", type=float, help="API backoff seconds (default: 5)")
    ap.add_argument("-o", "--docker-retries", dest="docker_retries", type=int, help="docker copy retry attempts (default: 2)")
    ap.add_argument("-w", "--docker-backoff", dest="docker_backoff_sec", type=float, help="docker backoff seconds (default: 5)")
    ap.add_argument("-m", "--min-free-bytes", dest="min_free_bytes", type=int, help="minimum free bytes required (default: 10485760)")
    ap.add_argument("-x", "--compose-prefix", dest="compose_dir_prefix", help="compose directory prefix (default: /data/compose)")
    ap.add_argument("-y", "--compose-candidates", dest="compose_candidates", help="space-separated compose filenames")
    ap.add_argument("-g", "--log-file", dest="log_file", help="log file path ('' disables)")
    ap.add_argument("-l", "--log-max-bytes", dest="log_max_bytes", type=int, help="log rotation size limit (default: 5242880)")
    ap.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING or ERROR (default: INFO)")
    ap.add_argument("--report", action="store_true", default=None, help="print a per-stack report at the end")
    ap.add_argument("--report-compact", dest="report_compact", action="store_true", default=None, help="print a one-line summary at the end")
    ap.add_argument("--show-changes", dest="show_changes", action="store_true", default=None, help="compare each compose file with the previous run")
    return ap


PATH_FIELDS = {"backup_dir", "db_file"}
SKIP_FIELDS = {"config"}


def apply_args(cfg: Config, args: argparse.Namespace) -> Config:
    """Copy every flag the user actually set onto the config."""
    for key, value in vars(args).items():
        if key in SKIP_FIELDS or value is None:
            continue
        if key in PATH_FIELDS:
            value = Path(value)
        elif key == "compose_candidates":
            value = value.split()
        setattr(cfg, key, value)
    return cfg


def main(argv=None) -> int:
    try:
        args = build_parser().parse_args(argv)

        try:
            cfg_path = find_config(args.config)
            cfg = load_config(cfg_path)
        except FileNotFoundError as e:
            print(f"❌ Error: {e}")
            print(f"💡 Hint: Check the path, or drop --config to use built-in defaults")
            return 1
        except Exception as e:
            print(f"❌ Error: Invalid configuration file {cfg_path}: {e}")
            print(f"💡 Hint: Check TOML syntax and value types in {cfg_path}")
            return 1

        try:
            apply_env(cfg)
        except ValueError as e:
            print(f"❌ Error: Invalid environment variable: {e}")
            return 1
        apply_args(cfg, args)

        problems = validate_config(cfg)
        if problems:
            for p in problems:
                print(f"❌ Error: {p}")
            print(f"💡 Hint: Try 'stackrip -d /backup/portainer -u https://portainer.local:9443 -k <key>'")
            return 1

        setup_logging(cfg)
        return run_plan(cfg)

    except KeyboardInterrupt:
        print(f"\n\n⚡ Interrupted by user. Partial backups may remain in the backup directory.")
        return 130
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        print(f"💡 Hint: Run with --dry-run first to check configuration")
        return 1


if __name__ == "__main__":
    sys.exit(main())
