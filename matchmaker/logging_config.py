"""
Logging setup for the matchmaker CLI.

Two sinks: a short coloured line per record on stderr (stdout belongs to
the printed tables) and a JSON-lines file under logs/ that keeps the
structured extras engine code attaches, e.g.

    logger.info("Built %d pairs", n, extra={"pool_size": 12, "duration_ms": 4.1})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
LOG_FILE_NAME = "matchmaker.log"

# Keys engine code may pass through ``extra=``; anything else is dropped
EXTRA_FIELDS = ("player", "match_id", "pool_size", "profile", "duration_ms", "error")

LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


def _extras(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, extras."""

    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    def format(self, record):
        line = f"{record.levelname[0]} {record.name}: {record.getMessage()}"
        extras = _extras(record)
        if extras:
            line += "  (" + ", ".join(f"{k}={v}" for k, v in extras.items()) + ")"
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}\033[0m" if color else line


def setup_logging(level: str = "INFO", log_file: str = None):
    """Replace the root handlers with the console and JSON file handlers.

    A log file that cannot be opened only disables the file sink.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    log_file = log_file or os.path.join(LOG_DIR, LOG_FILE_NAME)
    try:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        root.warning("File logging disabled (%s): %s", log_file, e)
    else:
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)
