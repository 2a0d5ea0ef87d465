"""Structured logging for LiftLog workers.

LIFTLOG_LOG_FORMAT selects "json" (default, one object per line) or "text".
Context goes in ``extra={"liftlog_user_id": ..., "liftlog_job_type": ...}``;
both formatters pick up every ``liftlog_*`` attribute.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

_EXTRA_PREFIX = "liftlog_"


def _context_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key.startswith(_EXTRA_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        log_entry.update(_context_fields(record))
        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plaintext lines with ``key=value`` context appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_fields(record)
        if context:
            suffix = " ".join(
                f"{key[len(_EXTRA_PREFIX):]}={value}" for key, value in sorted(context.items())
            )
            first, sep, rest = line.partition("\n")
            line = f"{first} [{suffix}]{sep}{rest}"
        return line


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    """Configure the root logger; replaces any handlers already installed."""
    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())
    root.addHandler(handler)

    # psycopg logs every reconnect of the LISTEN loop at INFO
    logging.getLogger("psycopg").setLevel(max(level, logging.WARNING))
