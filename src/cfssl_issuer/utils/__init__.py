"""Utility functions for the CFSSL Issuer."""

from .conditions import Condition, ConditionSet, format_time, is_ready, utcnow
from .context import (
    get_context_dict,
    get_correlation_id,
    reconcile_context,
    remaining_timeout,
    set_correlation_id,
)
from .events import emit_event
from .secrets import read_secret_data

__all__ = [
    "Condition",
    "ConditionSet",
    "format_time",
    "is_ready",
    "utcnow",
    "emit_event",
    "read_secret_data",
    "set_correlation_id",
    "get_correlation_id",
    "reconcile_context",
    "remaining_timeout",
    "get_context_dict",
]
