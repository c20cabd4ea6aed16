"""
Logging setup.

Format comes from ``LOG_FORMAT`` ("json" or "text"; default json outside
DEBUG/TESTING) and level from ``LOG_LEVEL``. Every record emitted while a
request is being served carries the request id and the authenticated user,
so one login or permission denial can be traced across log lines.

Structured context is passed with ``extra=``::

    logger.warning("User %s denied", uid, extra={"event_type": "access_denied"})
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# extra= keys promoted into the JSON document
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "event_type",
)

# never written out, whatever a caller passes in extra=
REDACTED_FIELDS = frozenset({"password", "new_password", "token", "access_token", "reset_token"})

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "flask_limiter")


class RequestContextFilter(logging.Filter):
    """Stamp records with request id / user id when inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if not hasattr(record, "request_id"):
                record.request_id = g.get("request_id")
            if not hasattr(record, "user_id"):
                user = g.get("current_user")
                record.user_id = user.id if user is not None else None
            if not hasattr(record, "path"):
                record.path = request.path
        for name in REDACTED_FIELDS:
            if hasattr(record, name):
                setattr(record, name, "***")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                doc[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """One line per record; request id and event appended when present."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tags = []
        if getattr(record, "event_type", None):
            tags.append(record.event_type)
        if getattr(record, "request_id", None):
            tags.append(f"rid={record.request_id}")
        if getattr(record, "duration_ms", None) is not None:
            tags.append(f"{record.duration_ms:.0f}ms")
        if tags:
            # traceback (if any) stays on the following lines
            head, sep, rest = line.partition("\n")
            line = f"{head} [{' '.join(tags)}]{sep}{rest}"
        return line


def _resolve_format(app) -> str:
    fmt = (app.config.get("LOG_FORMAT") or "").lower()
    if fmt in ("json", "text"):
        return fmt
    return "text" if app.config.get("DEBUG") or app.config.get("TESTING") else "json"


def configure_logging(app):
    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    fmt = _resolve_format(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    handler.addFilter(RequestContextFilter())

    # replace, not append: the test suite builds the app more than once per process
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured (level=%s, format=%s)", level_name, fmt)
