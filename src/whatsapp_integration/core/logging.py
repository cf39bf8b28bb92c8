"""
Logging setup with per-request correlation ids.

The webhook app stamps every request with an id (taken from X-Request-ID
when the caller sends one) and every log line emitted while handling it
carries that id.
"""

import logging
import uuid
from contextvars import ContextVar

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s | [%(correlation_id)s] | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation id for the current context, generating one if needed."""
    if not correlation_id:
        correlation_id = f"req-{uuid.uuid4().hex[:8]}"
    correlation_id_var.set(correlation_id)
    return correlation_id


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record so the formatter can print it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-request"
        return True


def setup_logging(level: str | int = logging.INFO) -> None:
    """
    Configure the root logger with a single correlation-aware stream handler.

    Safe to call more than once; existing root handlers are replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    # httpx logs every request at INFO, including URLs with tokens in the query
    logging.getLogger("httpx").setLevel(logging.WARNING)
