"""
Structured logging configuration.

- Development: human-readable colored lines, matrix context appended as tags
- Production: one JSON object per line (log aggregator compatible)
- Log level: LOG_LEVEL env variable, LOG_FORMAT=json|readable forces a format

Request timing (``app.middleware.timing``) and the training matrix services
pass context through ``extra=``; the keys below are the ones either
formatter picks up.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
MATRIX_FIELDS = ("event_type", "source", "export_format")
EXTRA_FIELDS = REQUEST_FIELDS + MATRIX_FIELDS

# Shown as [key=value] tags in development
TAG_FIELDS = ("source", "export_format")

NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "asyncio", "flask_limiter")


def record_extras(record: logging.LogRecord, fields=EXTRA_FIELDS) -> dict:
    """Extra context attached to a record, skipping keys left unset."""
    extras = {}
    for key in fields:
        val = getattr(record, key, None)
        if val is not None:
            extras[key] = val
    return extras


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_entry.update(record_extras(record))
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color, reset = "", ""
        if self.use_color:
            color, reset = self.COLORS.get(record.levelname, ""), self.RESET
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{reset} {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        for key, val in record_extras(record, TAG_FIELDS).items():
            line += f" [{key}={val}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    forced = os.getenv("LOG_FORMAT", "").strip().lower()
    if forced in ("json", "readable"):
        return forced == "json"
    return not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev/test, INFO in prod).
    Replaces any root handlers so repeated app creation in tests does not
    duplicate output.
    """
    is_testing = app.config.get("TESTING", False)
    as_json = _use_json(app)

    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter(use_color=sys.stderr.isatty()))
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if as_json else "readable")
