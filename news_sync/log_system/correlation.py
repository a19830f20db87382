"""Correlation IDs for log records.

A correlation ID ties together every log line emitted while handling one
tool call or one sync cycle. IDs live in a context variable so concurrent
tasks keep their own.
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_initialization_id: Optional[str] = None


def generate_correlation_id(prefix: str = "req") -> str:
    """Create a new correlation ID such as ``req_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def get_correlation_id() -> Optional[str]:
    """Current correlation ID, falling back to the initialization ID."""
    return _correlation_id.get() or _initialization_id


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id.set(correlation_id)


def set_initialization_correlation_id(correlation_id: str) -> None:
    """Set the ID used for log lines emitted during server startup."""
    global _initialization_id
    _initialization_id = correlation_id


def clear_initialization_correlation_id() -> None:
    global _initialization_id
    _initialization_id = None


@contextmanager
def correlation_scope(prefix: str = "req") -> Iterator[str]:
    """Run a block under a fresh correlation ID."""
    correlation_id = generate_correlation_id(prefix)
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Attach ``correlation_id`` to every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True
