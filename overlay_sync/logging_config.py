"""
Logging Configuration — stderr logging for sync runs.

Text lines for interactive use, one JSON object per line for cron and CI
runs. JSON entries carry the role, branch and commit a message is about
when the caller passes them via ``extra=``.

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from overlay_sync.logging_config import setup_logging

    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Extra record attributes carried through to JSON output.
CONTEXT_FIELDS = ("role", "branch", "commit")

FORMATTERS = ("text", "json")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, plus context."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class HumanFormatter(logging.Formatter):
    """
    Plain text, one line per record (plus any traceback):

        12:34:56 WARNING [propagation    ] Message
    """

    def format(self, record: logging.LogRecord) -> str:
        module = record.name.rsplit(".", 1)[-1][:15]
        line = (
            f"{self.formatTime(record, '%H:%M:%S')} {record.levelname:7} "
            f"[{module:15}] {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Route all records to stderr. stdout is left for the run summary.

    Args:
        level: Log level name. Defaults to $LOG_LEVEL, then INFO.
        format_type: "text" or "json". Defaults to $LOG_FORMAT, then text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()
    numeric_level = getattr(logging, log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if log_format == "json" else HumanFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
