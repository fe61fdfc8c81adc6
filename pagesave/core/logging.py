"""Logging setup, per-save log context and the save audit trail."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
AUDIT_LOGGER_NAME = "pagesave.audit"

OUTCOME_FAILED = "failed"


def setup_logging(
    level: int = logging.INFO,
    *,
    quiet: bool = False,
    verbose: bool = False,
) -> None:
    """Send log records to stderr.

    stdout is reserved for ``pagesave serve`` replies and JSON output, so
    nothing is ever logged there. ``quiet`` wins over ``verbose``.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, stream=sys.stderr)

    # One line per request is too chatty for resumable uploads
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Tags log lines with an operation name and its key fields.

    Used as a context manager around one save; entering and leaving are
    logged at debug level with the elapsed time.

        with LogContext("save", logger, task="t1") as ctx:
            ctx.info("Skipped existing file")
        # -> "[save] Skipped existing file (task=t1)"
    """

    def __init__(self, operation: str, logger: Optional[logging.Logger] = None, **fields: Any):
        self.operation = operation
        self.logger = logger or logging.getLogger(__name__)
        self.fields = fields
        self.started: Optional[datetime] = None

    def __enter__(self) -> LogContext:
        self.started = datetime.now()
        self.logger.debug("%s started (%s)", self.operation, self._fields())
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # Failures are logged by the caller, which knows whether they matter
        outcome = "interrupted" if exc_type else "done"
        self.logger.debug("%s %s in %.2fs", self.operation, outcome, self.elapsed)

    @property
    def elapsed(self) -> float:
        if self.started is None:
            return 0.0
        return (datetime.now() - self.started).total_seconds()

    def _fields(self) -> str:
        return ", ".join(f"{key}={value}" for key, value in self.fields.items())

    def log(self, level: int, message: str, *args: Any) -> None:
        self.logger.log(level, f"[{self.operation}] {message} ({self._fields()})", *args)

    def debug(self, message: str, *args: Any) -> None:
        self.log(logging.DEBUG, message, *args)

    def info(self, message: str, *args: Any) -> None:
        self.log(logging.INFO, message, *args)

    def warning(self, message: str, *args: Any) -> None:
        self.log(logging.WARNING, message, *args)


class AuditLogger:
    """Writes one ``AUDIT:`` record per finished save.

    Outcomes are ``completed``, ``skipped``, ``cancelled`` and ``failed``;
    failures are logged at warning level, the rest at info.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def log_save(
        self,
        outcome: str,
        *,
        task_id: Optional[str] = None,
        session_id: Any = None,
        destination: Optional[str] = None,
        filename: Optional[str] = None,
        url: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> None:
        fields = {
            "task": task_id,
            "session": session_id,
            "destination": destination,
            "filename": filename,
            "url": url,
            "duration": round(duration, 3) if duration is not None else None,
        }
        record: dict[str, Any] = {"timestamp": datetime.now().isoformat(), "outcome": outcome}
        record.update((key, value) for key, value in fields.items() if value not in (None, ""))

        level = logging.WARNING if outcome == OUTCOME_FAILED else logging.INFO
        self.logger.log(level, "AUDIT: %s", record)


def get_audit_logger() -> AuditLogger:
    return AuditLogger()
