"""
Correlation IDs for grouping the log lines of one unit of bridge work.

A unit of work is a reconciliation run, an inbound MQTT command or a single
controller event. The ID lives in a contextvar so it follows the asyncio task
that handles the work and is picked up by both log formatters.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "get_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation ID to a block of work.

    A fresh ID is generated unless one is given. The previous ID is restored
    on exit.

    Example:
        with correlation_context() as corr_id:
            logger.info("Reconciling")  # tagged with corr_id
    """
    new_id = correlation_id or uuid.uuid4().hex
    token = _correlation_id.set(new_id)
    try:
        yield new_id
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one for this context if unset."""
    current_id = _correlation_id.get()
    if current_id is None:
        current_id = uuid.uuid4().hex
        _ = _correlation_id.set(current_id)
    return current_id
