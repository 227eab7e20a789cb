"""Structured logging for docwiki.

JSON lines carrying the request context (trace id, acting user, workspace)
plus any page/comment ids passed through ``extra=``. Tokens and passwords
are redacted from messages before they leave the process.
"""
from __future__ import annotations

import json
import logging
import re
import time
from contextvars import ContextVar

# Request context, set by the HTTP middlewares
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
workspace_id_var: ContextVar[str] = ContextVar("workspace_id", default="")

# Record attributes copied into the JSON entry when a log call sets them
_EXTRA_FIELDS = ("page_id", "comment_id", "space_id")

_SECRET_PATTERNS = [
    re.compile(r'(Bearer\s+)[a-zA-Z0-9._\-]{20,}', re.I),
    re.compile(r'(password["\s:=]+)[^\s,}"\']+', re.I),
    re.compile(r'(token["\s:=]+)[^\s,}"\']+', re.I),
]


def _redact(text: str) -> str:
    for pat in _SECRET_PATTERNS:
        text = pat.sub(r'\1[REDACTED]', text)
    return text


class StructuredFormatter(logging.Formatter):
    """JSON formatter with request context and secret redaction."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": _redact(record.getMessage()),
        }
        for key, var in (
            ("trace_id", trace_id_var),
            ("user_id", user_id_var),
            ("workspace_id", workspace_id_var),
        ):
            value = var.get("")
            if value:
                entry[key] = value
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["error"] = _redact(str(record.exc_info[1]))
            entry["error_type"] = type(record.exc_info[1]).__name__
        return json.dumps(entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local runs (LOG_FORMAT=text)."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-5s [%(name)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = _redact(super().format(record))
        tid = trace_id_var.get("")
        return f"{line} trace={tid}" if tid else line


def setup_logging(level: str = "WARNING", json_format: bool = True):
    """Configure the root logger. Replaces any handler installed before."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for h in root.handlers[:]:
        root.removeHandler(h)
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else TextFormatter())
    root.addHandler(handler)
    # request lines duplicate the trace middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
