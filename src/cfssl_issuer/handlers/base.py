"""Base handler class with common functionality for all reconcilers."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import kopf

from .. import metrics
from ..constants import (
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    MAX_RETRY_DELAY_SECONDS,
    MIN_RETRY_DELAY_SECONDS,
)
from ..logging import log_resource_event
from ..tracing import trace_span
from ..utils.conditions import Clock, utcnow
from ..utils.context import reconcile_context
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder, emit_event

CONTROLLER_NAME = "cfssl-issuer"

TEMPORARY_ERROR_PREFIX = "temporary error, retrying"


@dataclass(frozen=True)
class Result:
    """Outcome of a single reconcile.

    ``error`` set means "retry with backoff". No error and no
    ``requeue_after`` means the reconcile reached a state that needs an
    external change (or nothing at all) before anything else happens.
    """

    requeue_after: float | None = None
    error: Exception | None = None

    @classmethod
    def done(cls) -> Result:
        return cls()

    @classmethod
    def requeue(cls, after: float) -> Result:
        return cls(requeue_after=after)

    @classmethod
    def retry_with(cls, error: Exception) -> Result:
        return cls(error=error)

    @property
    def retry(self) -> bool:
        return self.error is not None

    @property
    def terminal(self) -> bool:
        return self.error is None and self.requeue_after is None


def backoff_delay(retry: int) -> float:
    """Exponential backoff: 1s, 2s, 4s, ... capped at MAX_RETRY_DELAY_SECONDS."""
    return min(MIN_RETRY_DELAY_SECONDS * (2 ** max(retry, 0)), MAX_RETRY_DELAY_SECONDS)


def apply_result(result: Result, retry: int = 0) -> None:
    """Hand a reconcile result back to kopf.

    Raises:
        kopf.TemporaryError: If the result asks for a retry
    """
    if result.error is not None:
        raise kopf.TemporaryError(sanitize_exception(result.error), delay=backoff_delay(retry)) from result.error


class KeyedLock:
    """One lock per resource key, so a resource is never reconciled twice at once.

    kopf runs timers alongside the regular handlers, so the handler entry
    points take this lock before reconciling.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


class BaseHandler:
    """Base class for the reconcilers with logging, events and metrics."""

    event_reason = ""

    def __init__(
        self,
        kind: str,
        recorder: EventRecorder = emit_event,
        clock: Clock = utcnow,
        reconcile_timeout: float | None = None,
    ):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "Issuer", "CertificateRequest")
            recorder: Callable used to emit Kubernetes events
            clock: Source of the current time for condition timestamps
            reconcile_timeout: Deadline in seconds for one reconcile, None for unbounded
        """
        self.kind = kind
        self.recorder = recorder
        self.clock = clock
        self.reconcile_timeout = reconcile_timeout
        self.logger = logging.getLogger(__name__)

    def _log(
        self,
        level: int,
        name: str,
        namespace: str | None,
        uid: str,
        message: str,
        event: str,
        reason: str,
        **kwargs: Any,
    ) -> None:
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=name,
            namespace=namespace or "",
            uid=uid,
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        name: str,
        namespace: str | None,
        message: str,
        uid: str = "",
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message."""
        self._log(logging.INFO, name, namespace, uid, message, event, reason, **kwargs)

    def log_error(
        self,
        name: str,
        namespace: str | None,
        message: str,
        error: Exception | None = None,
        uid: str = "",
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            error: Optional exception to include sanitized error details
        """
        if error is not None:
            kwargs["error"] = sanitize_exception(error)
            kwargs["error_type"] = type(error).__name__
        self._log(logging.ERROR, name, namespace, uid, message, event, reason, **kwargs)

    def record_event(self, body: dict[str, Any], message: str, warning: bool) -> None:
        """Emit the single event describing a status change."""
        self.recorder(
            body,
            self.event_reason,
            message,
            EVENT_TYPE_WARNING if warning else EVENT_TYPE_NORMAL,
        )

    def reconcile_with_metrics(
        self,
        name: str,
        namespace: str | None,
        reconcile_fn: Callable[[], Result],
        correlation_id: str | None = None,
    ) -> Result:
        """Execute reconciliation with tracing, metrics and error logging.

        Args:
            name: Resource name
            namespace: Resource namespace (None for cluster scoped resources)
            reconcile_fn: Function performing the reconcile
            correlation_id: ID attached to every log line of this reconcile

        Returns:
            The Result of reconcile_fn
        """
        start_time = time.time()
        corr_id = correlation_id or f"{namespace or ''}/{name}"
        try:
            with reconcile_context(corr_id, self.reconcile_timeout):
                with trace_span(
                    f"reconcile_{self.kind.lower()}",
                    kind=self.kind,
                    attributes={"resource.name": name, "resource.namespace": namespace or ""},
                ):
                    result = reconcile_fn()
        except Exception as e:
            metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            self.log_error(name, namespace, "Reconciliation failed", error=e, reason="ReconciliationFailed")
            raise
        finally:
            duration = time.time() - start_time
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)

        if result.error is not None:
            metrics.error_total.labels(kind=self.kind, error_type=type(result.error).__name__).inc()
            metrics.reconcile_total.labels(kind=self.kind, result="retry").inc()
        else:
            metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        return result
