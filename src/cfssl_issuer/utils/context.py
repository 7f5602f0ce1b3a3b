"""Per-reconcile context: correlation IDs and deadlines."""

from __future__ import annotations

import contextvars
import time
from contextlib import contextmanager
from typing import Any, Iterator

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Monotonic deadline for the reconcile in progress
deadline: contextvars.ContextVar[float | None] = contextvars.ContextVar(
    "deadline", default=None
)


class DeadlineExceeded(TimeoutError):
    """Raised when the reconcile deadline has passed before a remote call."""


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation ID in the current context."""
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


@contextmanager
def reconcile_context(corr_id: str, timeout: float | None = None) -> Iterator[str]:
    """Set a correlation ID and an optional deadline for the duration of a block.

    Args:
        corr_id: Correlation ID to use (typically the resource UID)
        timeout: Seconds until the deadline; None leaves it unbounded

    Yields:
        The correlation ID
    """
    corr_token = correlation_id.set(corr_id)
    deadline_token = deadline.set(time.monotonic() + timeout if timeout is not None else None)
    try:
        yield corr_id
    finally:
        deadline.reset(deadline_token)
        correlation_id.reset(corr_token)


def remaining_timeout(default: float) -> float:
    """Return the timeout to use for the next remote call.

    The smaller of ``default`` and the time left until the current deadline.

    Raises:
        DeadlineExceeded: If the deadline has already passed
    """
    current = deadline.get()
    if current is None:
        return default
    remaining = current - time.monotonic()
    if remaining <= 0:
        raise DeadlineExceeded("reconcile deadline exceeded")
    return min(default, remaining)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values."""
    ctx: dict[str, Any] = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    if additional:
        ctx.update(additional)

    return ctx
