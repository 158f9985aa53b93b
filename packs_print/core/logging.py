"""
Logging utilities for Packs Print.

- RequestIdFilter attaches request_id and path (when in a Flask request context)
  and the id of the print job being handled on the current thread
- job_context() binds a job id to the current thread for the duration of a job
- JsonFormatter emits structured logs when PACKSPRINT_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console output

Module loggers are named after their module, so the logger name doubles as the
component tag (packs_print.printing.queue, packs_print.printing.device, ...).
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

_TRUTHY = ("1", "true", "yes")

_job_local = threading.local()


def current_job_id() -> Optional[str]:
    return getattr(_job_local, "job_id", None)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Tag log records emitted on this thread with ``job_id``."""
    previous = current_job_id()
    _job_local.job_id = job_id
    try:
        yield
    finally:
        _job_local.job_id = previous


class RequestIdFilter(logging.Filter):
    """
    Attach request_id/path inside a Flask request and job_id inside a print
    job. Falls back to "-" for each outside those contexts.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            record.request_id = g.request_id if has_request_context() and hasattr(g, "request_id") else "-"
            record.path = request.path if has_request_context() else "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        record.job_id = current_job_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record: ts, level, logger, msg, request_id, plus
    path/job_id when set and the formatted traceback when present.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for key in ("path", "job_id"):
            value = getattr(record, key, None)
            if value is not None and value != "-":
                base[key] = value
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def _debug_enabled() -> bool:
    for var in ("PACKSPRINT_DEBUG", "DEBUG"):
        if os.environ.get(var, "false").lower() in _TRUTHY:
            return True
    return False


def configure_logging() -> logging.Logger:
    """
    Configure root logging for the service.

    Behavior:
    - Root level INFO, or DEBUG when PACKSPRINT_DEBUG or DEBUG is truthy
    - Replaces existing root handlers (repeated factory calls stay single)
    - JSON output when PACKSPRINT_JSON_LOGS is truthy, plain text otherwise
    - systemd journal when python-systemd is installed, stderr otherwise
    - RequestIdFilter on the handler so formats can use %(request_id)s and %(job_id)s
    - Flask's app logger propagates to root instead of keeping its own handler

    Returns the configured root logger.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if _debug_enabled() else logging.INFO)
    root.handlers = []

    json_logs = os.environ.get("PACKSPRINT_JSON_LOGS", "false").lower() in _TRUTHY
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s [%(name)s] %(request_id)s %(job_id)s %(message)s"
        )

    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler(SYSLOG_IDENTIFIER="packs-print")
    except ImportError:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging", "current_job_id", "job_context"]
