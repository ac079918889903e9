"""
Logging utilities for Receipt Dispatch.

- JobIdFilter attaches the id of the job executing on the current thread
  (set by the executor through job_context) to every log record
- JsonFormatter emits structured logs when RECEIPT_DISPATCH_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console,
  and makes Flask's logger propagate to root
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

_local = threading.local()


def current_job_id() -> Optional[str]:
    return getattr(_local, "job_id", None)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """
    Tag log records emitted on this thread with job_id for the duration of the block.
    """
    previous = current_job_id()
    _local.job_id = job_id
    try:
        yield
    finally:
        _local.job_id = previous


class JobIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.job_id = current_job_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, message, and job_id.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "job_id": getattr(record, "job_id", "-"),
        }
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure root logging for the dispatcher.

    Behavior:
    - Sets root logger level (INFO by default)
    - Clears any existing handlers to avoid duplicates on repeated factory calls
    - Chooses JSON or plain formatter based on RECEIPT_DISPATCH_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds JobIdFilter so formatters can reference %(job_id)s

    Returns the configured root logger.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    json_logs = os.environ.get("RECEIPT_DISPATCH_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(job_id)s %(name)s: %(message)s")

    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler()
    except Exception:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(JobIdFilter())
    root.addHandler(handler)

    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


__all__ = ["JobIdFilter", "JsonFormatter", "configure_logging", "current_job_id", "job_context"]
