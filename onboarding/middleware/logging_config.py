"""
Logging setup for the onboarding service.

One stderr handler on the root logger. Records pass through
RequestContextFilter, which stamps request_id and tenant_id while a request
is active, so service lines logged deep inside a checklist transition can be
joined back to the HTTP call that caused them.

Output is JSON lines unless the app runs in DEBUG or TESTING, where a short
coloured line with a ``[tenant N]`` prefix is easier to read.
"""

import json
import logging
import os
import sys

from flask import g, has_request_context

from onboarding.middleware.timing import _tenant_scope

# Attributes copied into JSON output when a record carries them
CONTEXT_FIELDS = (
    "request_id",
    "tenant_id",
    "customer_id",
    "instance_id",
    "template_id",
    "item_id",
    "method",
    "path",
    "status",
    "duration_ms",
)

NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic", "urllib3")


class RequestContextFilter(logging.Filter):
    """Fill request_id / tenant_id from the current request unless already set."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "tenant_id", None) is None:
                record.tenant_id = _tenant_scope()
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):

    LEVEL_CODES = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self.LEVEL_CODES.get(record.levelno, "0")
        tenant = getattr(record, "tenant_id", None)
        scope = f"[tenant {tenant}] " if tenant is not None else ""
        line = (
            f"{self.formatTime(record, '%H:%M:%S')} "
            f"\033[{code}m{record.levelname[0]}\033[0m "
            f"{scope}{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(app) -> int:
    """LOG_LEVEL from app config, then env; INFO for JSON output, DEBUG otherwise."""
    verbose = app.config.get("DEBUG") or app.config.get("TESTING")
    name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("DEBUG" if verbose else "INFO")
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app):
    """Install the single root handler. Safe to call once per app factory run."""
    readable = bool(app.config.get("DEBUG") or app.config.get("TESTING"))
    level = _resolve_level(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ReadableFormatter() if readable else JSONFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)
    return handler
