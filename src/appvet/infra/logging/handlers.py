from __future__ import annotations

import logging
import sys
from logging import Handler
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .formatters import JSONFormatter, HumanReadableFormatter


def build_json_file_handler(
    path: Path,
    level: int = logging.INFO,
    *,
    max_bytes: int = 0,
    backup_count: int = 0,
) -> Handler:
    """Create a JSONL file handler, rotating by size when ``max_bytes`` is set.

    ``appvet serve`` runs for weeks; one-shot CLI commands append to the same
    file, so rotation is size-based rather than per process.

    Args:
        path: Path to log file (.jsonl)
        level: Logging level
        max_bytes: Rotate once the file reaches this size (0 disables)
        backup_count: Rotated files to keep

    Returns:
        Configured RotatingFileHandler with JSON formatter
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    h = RotatingFileHandler(
        path,
        mode="a",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    h.setLevel(level)
    h.setFormatter(JSONFormatter())
    return h


def build_human_console_handler(level: int = logging.INFO) -> Handler:
    # stderr: stdout carries the CLI's --json output
    h = logging.StreamHandler(sys.stderr)
    h.setLevel(level)
    h.setFormatter(HumanReadableFormatter())
    return h
