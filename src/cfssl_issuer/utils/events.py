"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any, Protocol

import kopf

from ..constants import EVENT_TYPE_NORMAL


class EventRecorder(Protocol):
    """Callable used by the reconcilers to record an event on an object."""

    def __call__(self, body: dict[str, Any], reason: str, message: str, type_: str = ...) -> None:
        ...


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = EVENT_TYPE_NORMAL,
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Full resource body (apiVersion, kind and metadata are required)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )
