"""Structured JSONL logging and request-id propagation.

WHY: Every log line written while a request is in flight must carry the
same request identifier the client sees in the x-request-id header, so a
single grep correlates the tracing middleware, the relay, and the Slack
client. One JSON object per line keeps the output machine-parseable.

HOW: The request id lives in a ContextVar (task-local under asyncio).
RequestIdFilter copies it onto every LogRecord; a python-json-logger
JsonFormatter renders the record plus any ``extra=`` fields.

RULES:
- configure_logging() replaces root handlers (safe to call twice)
- Records logged outside a request carry request_id=""
- An explicit extra={"request_id": ...} wins over the ContextVar
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_MSEC_FORMAT = "%s.%03d"

_FIELD_RENAMES = {
    "levelname": "level",
    "name": "logger",
}

_request_id: ContextVar[str] = ContextVar("request_id", default="")


# ---------------------------------------------------------------------------
# Request id context
# ---------------------------------------------------------------------------


def get_request_id() -> str:
    """Return the request id bound to the current task, or ""."""
    return _request_id.get()


def set_request_id(request_id: Optional[str] = None) -> Token:
    """Bind a request id to the current context.

    Generates a UUID4 when ``request_id`` is None or empty. Returns the
    token to pass to reset_request_id().
    """
    return _request_id.set(request_id or generate_request_id())


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def generate_request_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


class RequestIdFilter(logging.Filter):
    """Attach the current request id to each record.

    Never filters anything out; it only enriches.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        existing = getattr(record, "request_id", None)
        record.request_id = existing if existing else get_request_id()
        return True


def create_json_formatter() -> JsonFormatter:
    """JSON formatter; asctime renders as "YYYY-MM-DD HH:MM:SS.mmm"."""
    formatter = JsonFormatter(_LOG_FORMAT, rename_fields=_FIELD_RENAMES)
    formatter.default_time_format = _TIME_FORMAT
    formatter.default_msec_format = _MSEC_FORMAT
    return formatter


def configure_logging(level: str = "INFO") -> None:
    """Install JSONL logging on the root logger.

    WHY: The service runs in containers where stdout is collected line by
    line; plain-text logs lose the structured fields.

    HOW: One StreamHandler on stdout with the JSON formatter and the
    request-id filter. uvicorn's own loggers propagate to root.

    RULES:
    - Raises ValueError for unknown level names
    - Existing root handlers are replaced, not appended to
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            "Invalid log level: {}. Valid: {}".format(
                level, ", ".join(sorted(VALID_LOG_LEVELS))
            )
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_upper)
    handler.setFormatter(create_json_formatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.setLevel(level_upper)
    root.handlers = [handler]
