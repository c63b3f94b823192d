"""
JSON-lines logging for the financial functions.

Every line carries:
- service, env, version (from `optify.common.config`)
- request_id and uid when bound with `bind_log_context` (a `uid=` field fills
  in when no uid is bound)
- event_type (`log_event`) or "log" for plain logger calls
- severity in Cloud Logging terms, so stdout lines are parsed as structured logs
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from optify.common import config


_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("optify_request_id", default=None)
_UID: ContextVar[Optional[str]] = ContextVar("optify_uid", default=None)

# Attributes every LogRecord has; anything else on a record came from `extra=`.
_RECORD_ATTRS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}
_PAYLOAD_KEYS: frozenset[str] = frozenset(
    {"timestamp", "severity", "service", "env", "version", "request_id", "uid", "event_type", "message", "logger"}
)

_SEVERITY_BY_LEVEL = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}


def _short(v: Any, max_len: int) -> str:
    s = "" if v is None else str(v)
    s = " ".join(s.splitlines()).strip()
    return s if len(s) <= max_len else s[: max_len - 1] + "…"


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


def get_log_uid() -> Optional[str]:
    return _UID.get()


@contextmanager
def bind_log_context(*, request_id: Optional[str] = None, uid: Optional[str] = None) -> Iterator[str]:
    """
    Tag every log line emitted inside the block with a request id (generated
    when not given) and, optionally, the user the work is for.
    """
    rid = _short(request_id, 128) or uuid.uuid4().hex
    rid_token = _REQUEST_ID.set(rid)
    uid_token = _UID.set(uid or None)
    try:
        yield rid
    finally:
        _UID.reset(uid_token)
        _REQUEST_ID.reset(rid_token)


class JsonLogFormatter(logging.Formatter):
    def __init__(
        self,
        *,
        service: Optional[str] = None,
        env: Optional[str] = None,
        version: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._static = {
            "service": service or config.service_name(),
            "env": env or config.env_name(),
            "version": version or config.service_version(),
        }

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": _SEVERITY_BY_LEVEL.get(record.levelno, "DEFAULT"),
            **self._static,
            "request_id": get_request_id(),
            "uid": get_log_uid() or getattr(record, "uid", None),
            "event_type": getattr(record, "event_type", None) or "log",
            "message": _short(record.getMessage(), 4000),
            "logger": record.name,
        }

        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]

        for k, v in record.__dict__.items():
            if k in _RECORD_ATTRS or k in _PAYLOAD_KEYS or k.startswith("_"):
                continue
            payload[k] = v

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def init_structured_logging(
    *,
    service: Optional[str] = None,
    env: Optional[str] = None,
    version: Optional[str] = None,
    level: str | int | None = None,
) -> None:
    """Route the root logger to one JSON line per record on stdout. Re-running replaces the handler."""
    lvl = level or config.log_level()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=service, env=env, version=version))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(lvl)
    logging.captureWarnings(True)


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    level: int = logging.INFO,
    message: Optional[str] = None,
    **fields: Any,
) -> None:
    """Log a semantic event; `fields` become top-level JSON keys."""
    logger.log(level, message or event_type, extra={"event_type": event_type, **fields})
