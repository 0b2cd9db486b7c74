"""
Logging setup for the engine.

One stderr handler on the root logger:
  - JSON lines outside debug/testing (for the log shipper)
  - short colored lines in development
LOG_LEVEL overrides the level.  Records emitted while serving a request
carry the request id and the acting user.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Record attributes forwarded into JSON output when present.
_CONTEXT_FIELDS = (
    "request_id",
    "actor",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic", "urllib3")


class RequestContextFilter(logging.Filter):
    """Stamp request_id / actor onto records emitted inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        if getattr(record, "request_id", None) is None:
            record.request_id = getattr(g, "request_id", None)
        if getattr(record, "actor", None) is None:
            record.actor = request.headers.get("X-User")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(
            (name, getattr(record, name))
            for name in _CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Compact colored lines for a terminal."""

    _PALETTE = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self._PALETTE.get(record.levelno, "0")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"\033[{code}m{stamp} {record.levelname:<8}\033[0m {record.name}"

        rid = getattr(record, "request_id", None)
        if rid:
            line += f" ({rid})"
        line += f": {record.getMessage()}"

        elapsed = getattr(record, "duration_ms", None)
        if elapsed is not None:
            line += f" [{elapsed:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the root handler for *app*; safe to call once per app."""
    testing = bool(app.config.get("TESTING"))
    production = not testing and not app.config.get("DEBUG")

    level_name = os.getenv("LOG_LEVEL") or ("INFO" if production else "DEBUG")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    # Replace, not append: tests build several apps in one process.
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, %s)", level_name.upper(),
                        "json" if production else "readable")
