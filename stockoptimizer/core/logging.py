"""Logging setup for the API and background optimization runs.

Records carry optional ``extra_fields`` (portfolio id, job id, status codes)
that the JSON formatter flattens into the log line. The id of the HTTP
request or optimization job being served lives in ``request_id_var``.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import Settings, settings


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Libraries that log every query, request or connection at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpx", "sqlalchemy.engine", "aiosqlite", "redis")


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id
        entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self.include_location:
            entry["location"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text for local runs; context fields appended as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        context = f" [{request_id[:8]}]" if request_id else ""
        fields = getattr(record, "extra_fields", None) or {}
        suffix = "".join(f" {k}={v}" for k, v in fields.items())
        line = (
            f"{_timestamp(record):%Y-%m-%d %H:%M:%S} {record.levelname:<8}{context} "
            f"{record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from messages before they are formatted.

    Covers ``key=value`` / ``"key": value`` pairs for well-known secret names
    and the password part of connection URLs (database, Valkey).
    """

    KEY_VALUE = re.compile(
        r"""(["']?(?:password|token|secret|authorization|api_key)["']?\s*[=:]\s*)[^\s,}\]]+""",
        re.IGNORECASE,
    )
    URL_PASSWORD = re.compile(r"(://[^:/@\s]*:)[^@\s]+(@)")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.URL_PASSWORD.sub(r"\1[REDACTED]\2", message)
        redacted = self.KEY_VALUE.sub(r"\1[REDACTED]", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(source: Settings | None = None) -> None:
    """Replace root handlers with one stdout handler configured from settings."""
    cfg = source or settings
    level = getattr(logging, cfg.log_level)

    handler = logging.StreamHandler(sys.stdout)
    if cfg.log_format == "json":
        handler.setFormatter(StructuredFormatter(include_location=cfg.debug))
    else:
        handler.setFormatter(TextFormatter())
    handler.addFilter(SensitiveDataFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"stockoptimizer.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Attach fixed context (portfolio id, job id) to every record as ``extra_fields``."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        fields = {**(self.extra or {}), **extra.get("extra_fields", {})}
        request_id = request_id_var.get()
        if request_id:
            fields.setdefault("request_id", request_id)
        extra["extra_fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs
