"""
Logging Configuration — Structured logging setup.

Provides consistent logging across the engine and CLI with:
- JSON output for automation (one object per line)
- Human-readable output for operators
- Configurable log levels

Secret values are never passed to the logger; records carry the secret
path, version and replica address as extra fields instead.

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from kvmirror.logging_config import setup_logging

    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Extra record attributes surfaced by both formatters when present
CONTEXT_FIELDS = ("secret_path", "version", "replica")


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields attached to a record through ``extra=``."""
    return {f: getattr(record, f) for f in CONTEXT_FIELDS if hasattr(record, f)}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "message": "...",
     "secret_path": "...", "version": 2, "replica": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(_context(record))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Operator-facing formatter, coloured when stderr is a terminal.

    Output format:
    12:34:56 INFO    [lifecycle      ] Message  (common/app/db v2)
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = f"{record.levelname:7}"
        if sys.stderr.isatty():
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        module = record.name.rsplit(".", 1)[-1][:15]
        line = f"{time_str} {level} [{module:15}] {record.getMessage()}"

        context = _context(record)
        where = " ".join(
            part for part in (
                context.get("secret_path"),
                f"v{context['version']}" if context.get("version") is not None else None,
                f"@{context['replica']}" if context.get("replica") else None,
            ) if part
        )
        if where and where not in line:
            line = f"{line}  ({where})"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
               Defaults to LOG_LEVEL env var or INFO.
        format_type: Output format (json, text).
                     Defaults to LOG_FORMAT env var or text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()

    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    # stdout is reserved for command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
