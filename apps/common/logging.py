"""
Logging infrastructure for the pricing platform.

- RequestIDFilter: injects a correlation id into every log record
- correlation_context: binds a correlation id for the duration of a block
  (background tasks use it so refresh logs can be grouped)

Usage:
    from apps.common.logging import correlation_context

    with correlation_context("fx-refresh"):
        logger.info("Refreshing rates")
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from collections.abc import Generator

# Thread-local storage for request context
_request_context = threading.local()


def set_request_id(request_id: str) -> None:
    """Set the current request ID in thread-local storage."""
    _request_context.request_id = request_id


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    _request_context.request_id = None


@contextlib.contextmanager
def correlation_context(prefix: str = "task") -> Generator[str, None, None]:
    """Bind a fresh correlation id, restoring the previous one on exit."""
    previous = get_request_id()
    request_id = f"{prefix}-{uuid.uuid4().hex[:12]}"
    set_request_id(request_id)
    try:
        yield request_id
    finally:
        if previous is None:
            clear_request_id()
        else:
            set_request_id(previous)


class RequestIDFilter(logging.Filter):
    """
    Add request ID to log records.

    Records that already carry ``request_id`` (passed through ``extra``)
    keep their own value.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        return True
