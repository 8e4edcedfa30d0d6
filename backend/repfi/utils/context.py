# backend/repfi/utils/context.py
"""
Request context management.

Stores the correlation ID of the current request in a ContextVar so that
it propagates through async/await calls and into every log record.

Usage:
    from repfi.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")      # in middleware
    correlation_id = get_correlation_id()
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, or None if not set."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)
