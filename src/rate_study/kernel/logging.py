"""
Structured logging for the rate study engine.

Every log line carries a correlation ID for the editing session and, inside
`ledger_context`, the enterprise being worked on, so one recompute or
validation pass can be followed through interleaved output.

Logs always go to stderr; the CLI keeps stdout for reports and JSON.
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

LOG_LEVEL_ENV = "RATE_STUDY_LOG_LEVEL"
LOG_FORMAT_ENV = "RATE_STUDY_LOG_FORMAT"

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


def get_correlation_id() -> str:
    """Current session correlation ID, created on first use."""
    cid = correlation_id_var.get()
    if not cid:
        cid = secrets.token_urlsafe(16)
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def _add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("correlation_id", get_correlation_id())
    return event_dict


def configure_logging(
    *,
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        json_output: JSON lines when True, console text when False.
            None reads RATE_STUDY_LOG_FORMAT ("json" or "console").
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
            None reads RATE_STUDY_LOG_LEVEL, falling back to INFO.
    """
    if json_output is None:
        json_output = os.getenv(LOG_FORMAT_ENV, "console").lower() == "json"
    level_name = (log_level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


@contextmanager
def ledger_context(category: str, **fields: Any) -> Iterator[None]:
    """
    Bind the enterprise (and any extra fields) to every log line in the block.

    Nested blocks add to the outer binding; leaving a block restores it.
    """
    bound = {"category": category, **fields}
    previous = structlog.contextvars.get_contextvars()
    structlog.contextvars.bind_contextvars(**bound)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*bound)
        restore = {key: previous[key] for key in bound if key in previous}
        if restore:
            structlog.contextvars.bind_contextvars(**restore)


class LogOperation:
    """
    Time a block and log its outcome.

    Logs "<operation> completed" at INFO or "<operation> failed" at ERROR
    with the elapsed milliseconds. Exceptions are never suppressed.
    `elapsed_seconds` stays readable after the block for metric histograms.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.context = context
        self._started = 0.0
        self._finished: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        end = self._finished if self._finished is not None else time.perf_counter()
        return end - self._started

    def __enter__(self) -> "LogOperation":
        self._started = time.perf_counter()
        self._finished = None
        self.logger.debug(f"{self.operation} started", **self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self._finished = time.perf_counter()
        duration_ms = round(self.elapsed_seconds * 1000, 3)

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed", duration_ms=duration_ms, **self.context
            )
        else:
            # Stack traces only outside production
            self.logger.error(
                f"{self.operation} failed",
                duration_ms=duration_ms,
                error=repr(exc_val),
                exc_info=not is_production(),
                **self.context,
            )
