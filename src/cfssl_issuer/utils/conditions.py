"""Utilities for managing Kubernetes conditions.

Conditions are kept in a map keyed by type, so a status can never hold two
conditions of the same type. They are serialized back to the list form the
API server expects, in the order they were first seen.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from ..constants import COND_READY, STATUS_TRUE, STATUS_UNKNOWN

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_time(value: datetime) -> str:
    """Format a timestamp the way metav1.Time serializes (RFC3339, seconds)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Condition:
    """A single typed status condition."""

    type: str
    status: str = STATUS_UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=data.get("type", ""),
            status=data.get("status", STATUS_UNKNOWN),
            reason=data.get("reason", "") or "",
            message=data.get("message", "") or "",
            last_transition_time=data.get("lastTransitionTime"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.last_transition_time:
            data["lastTransitionTime"] = self.last_transition_time
        if self.reason:
            data["reason"] = self.reason
        if self.message:
            data["message"] = self.message
        return data


class ConditionSet:
    """Typed view over a resource's condition list."""

    def __init__(self, conditions: Iterable[dict[str, Any]] | None = None, clock: Clock = utcnow):
        self._clock = clock
        self._conditions: dict[str, Condition] = {}
        for raw in conditions or []:
            cond = Condition.from_dict(raw)
            # Later duplicates win, matching how the API server merges lists.
            self._conditions[cond.type] = cond

    @classmethod
    def from_status(cls, status: dict[str, Any] | None, clock: Clock = utcnow) -> ConditionSet:
        return cls((status or {}).get("conditions") or [], clock=clock)

    def get(self, condition_type: str) -> Condition | None:
        """Return the condition of the given type, if present.

        Conditions are immutable, so the returned value is effectively a copy.
        """
        return self._conditions.get(condition_type)

    def has(self, condition_type: str, status: str) -> bool:
        cond = self.get(condition_type)
        return cond is not None and cond.status == status

    def set(self, condition_type: str, status: str, reason: str, message: str) -> bool:
        """Set a condition, bumping lastTransitionTime only when status changes.

        Returns:
            True if the stored condition changed in any way
        """
        existing = self._conditions.get(condition_type)
        updated = replace(
            existing or Condition(type=condition_type, status=STATUS_UNKNOWN),
            reason=reason,
            message=message,
        )
        if existing is None or existing.status != status:
            updated = replace(updated, status=status, last_transition_time=format_time(self._clock()))

        self._conditions[condition_type] = updated
        return updated != existing

    def to_list(self) -> list[dict[str, Any]]:
        return [cond.to_dict() for cond in self._conditions.values()]

    def __iter__(self):
        return iter(self._conditions.values())

    def __len__(self) -> int:
        return len(self._conditions)


def get_ready_condition(conditions: ConditionSet) -> Condition | None:
    return conditions.get(COND_READY)


def is_ready(conditions: ConditionSet) -> bool:
    """Whether the Ready condition is present and True."""
    return conditions.has(COND_READY, STATUS_TRUE)
