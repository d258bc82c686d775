"""
logsetup.py
Configure the 'stackrip' logger once per process.

Console: INFO to stdout, WARN/ERROR to stderr, "LEVEL message".
File: size-rotated log next to cron output (RotatingFileHandler).
"""
from __future__ import annotations
import logging, sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from .types import Config

LOGGER_NAME = "stackrip"
FILE_BACKUPS = 5

logging.addLevelName(logging.WARNING, "WARN")


class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def setup_logging(cfg: Config, stdout=None, stderr=None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    level = logging.getLevelName(str(cfg.log_level).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    console_fmt = logging.Formatter("%(levelname)s %(message)s")
    out = logging.StreamHandler(stdout or sys.stdout)
    out.addFilter(_BelowWarning())
    out.setFormatter(console_fmt)
    err = logging.StreamHandler(stderr or sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(console_fmt)
    logger.addHandler(out)
    logger.addHandler(err)

    if cfg.log_file and not cfg.dry_run:
        try:
            Path(cfg.log_file).parent.mkdir(parents=True, exist_ok=True)
            if cfg.log_max_bytes > 0:
                fh = RotatingFileHandler(
                    cfg.log_file, maxBytes=cfg.log_max_bytes, backupCount=FILE_BACKUPS
                )
            else:
                fh = logging.FileHandler(cfg.log_file)
        except OSError as e:
            logger.warning("cannot open log file %s (%s); logging to console only", cfg.log_file, e)
        else:
            fh.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
            logger.addHandler(fh)
    return logger
