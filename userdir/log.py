"""Logging setup and request-scoped context for the service."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, TextIO

_request_id: ContextVar[Optional[str]] = ContextVar("userdir_request_id", default=None)

# Attributes present on every LogRecord; anything else was passed via ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "request_id"}

_PRETTY_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(request_tag)s: %(message)s"


def get_request_id() -> Optional[str]:
    return _request_id.get()


def bind_request_id(request_id: Optional[str]):
    """Set the request id for the current context and return the reset token."""

    return _request_id.set(request_id)


def reset_request_id(token) -> None:
    _request_id.reset(token)


class RequestIDFilter(logging.Filter):
    """Attach the active request id to every record passing through."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = _request_id.get()
        record.request_id = request_id
        record.request_tag = f" [{request_id}]" if request_id else ""
        return True


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key == "request_tag" or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def configure_logging(
    level: str | int = "info",
    *,
    pretty: bool = False,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Install a single stream handler on the root logger."""

    resolved_level = _resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(RequestIDFilter())
    if pretty:
        handler.setFormatter(logging.Formatter(_PRETTY_FORMAT))
    else:
        handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(resolved_level)
    return handler


__all__ = [
    "JSONFormatter",
    "RequestIDFilter",
    "bind_request_id",
    "configure_logging",
    "get_request_id",
    "reset_request_id",
]
