"""Issuer and ClusterIssuer reconciliation."""

from __future__ import annotations

from typing import Any

import kopf

from .. import metrics
from ..builders import Builder
from ..config import OperatorConfig, get_config
from ..constants import (
    API_GROUP_VERSION,
    COND_READY,
    EVENT_REASON_ISSUER_RECONCILER,
    KIND_CLUSTER_ISSUER,
    KIND_ISSUER,
    REASON_AUTH_SECRET_KEY_MISSING,
    REASON_AUTH_SECRET_NOT_FOUND,
    REASON_CHECKED,
    REASON_HEALTH_CHECK_FAILED,
    REASON_HEALTH_CHECKER_BUILD_FAILED,
    REASON_INVALID_SPEC,
    SECRET_KEY_AUTH,
    STATUS_FALSE,
    STATUS_TRUE,
)
from ..resources import ISSUER_CLASSES, ScopedIssuer
from ..services.cfssl.base import HealthChecker
from ..store import ResourceStore
from ..utils.conditions import Clock, utcnow
from ..utils.errors import (
    AuthSecretKeyMissingError,
    CfsslIssuerError,
    GetAuthSecretError,
    HealthCheckerBuilderError,
    HealthCheckerCheckError,
    InvalidIssuerSpecError,
    ResourceNotFound,
    StatusConflictError,
    UnrecognisedIssuerKindError,
    sanitize_exception,
)
from ..utils.events import EventRecorder, emit_event
from .base import TEMPORARY_ERROR_PREFIX, BaseHandler, KeyedLock, Result, apply_result

# Ready condition reason recorded for each failure of the health check chain.
FAILURE_REASONS: dict[type[CfsslIssuerError], str] = {
    InvalidIssuerSpecError: REASON_INVALID_SPEC,
    GetAuthSecretError: REASON_AUTH_SECRET_NOT_FOUND,
    AuthSecretKeyMissingError: REASON_AUTH_SECRET_KEY_MISSING,
    HealthCheckerBuilderError: REASON_HEALTH_CHECKER_BUILD_FAILED,
    HealthCheckerCheckError: REASON_HEALTH_CHECK_FAILED,
}


class IssuerHandler(BaseHandler):
    """Keeps an issuer's Ready condition in line with the reachability of its signing API."""

    event_reason = EVENT_REASON_ISSUER_RECONCILER

    def __init__(
        self,
        kind: str,
        store: ResourceStore,
        health_checker_builder: Builder[HealthChecker],
        cluster_resource_namespace: str,
        health_check_interval: float,
        recorder: EventRecorder = emit_event,
        clock: Clock = utcnow,
        reconcile_timeout: float | None = None,
    ):
        if kind not in ISSUER_CLASSES:
            raise UnrecognisedIssuerKindError(f"unrecognised issuer kind: {kind!r}")
        super().__init__(kind, recorder=recorder, clock=clock, reconcile_timeout=reconcile_timeout)
        self.issuer_class = ISSUER_CLASSES[kind]
        self.store = store
        self.health_checker_builder = health_checker_builder
        self.cluster_resource_namespace = cluster_resource_namespace
        self.health_check_interval = health_check_interval

    def run(self, name: str, namespace: str | None = None) -> Result:
        """Reconcile with metrics, tracing and a correlation ID."""
        return self.reconcile_with_metrics(name, namespace, lambda: self.reconcile(name, namespace))

    def reconcile(self, name: str, namespace: str | None = None) -> Result:
        """Check the issuer's signing API and record the outcome in its Ready condition."""
        try:
            body = self.store.get_issuer(self.kind, name, namespace)
        except ResourceNotFound:
            self.log_info(name, namespace, "Issuer not found, ignoring", event="not_found", reason="NotFound")
            return Result.done()

        issuer = self.issuer_class(body, clock=self.clock)

        try:
            self.check(issuer)
        except CfsslIssuerError as e:
            metrics.issuer_health_check_total.labels(kind=self.kind, result="failure").inc()
            reason = self._failure_reason(e)
            if e.retryable:
                message = f"{TEMPORARY_ERROR_PREFIX}: {sanitize_exception(e)}"
                result = Result.retry_with(e)
            else:
                message = sanitize_exception(e)
                result = Result.done()
            self.log_error(name, namespace, "Issuer health check failed", error=e, uid=issuer.uid, reason=reason)
            return self._report(issuer, STATUS_FALSE, reason, message, result, event_message=message, warning=True)

        metrics.issuer_health_check_total.labels(kind=self.kind, result="success").inc()
        return self._report(
            issuer,
            STATUS_TRUE,
            REASON_CHECKED,
            "",
            Result.requeue(self.health_check_interval),
            event_message="Success",
            warning=False,
        )

    def check(self, issuer: ScopedIssuer) -> None:
        """Run the validate, fetch secret, build, check chain.

        Raises:
            InvalidIssuerSpecError: A mandatory spec field is empty
            GetAuthSecretError: The credential secret could not be read
            AuthSecretKeyMissingError: The secret has no ``key`` entry
            HealthCheckerBuilderError: The health checker could not be built
            HealthCheckerCheckError: The signing API failed the check
        """
        issuer.spec.validate()

        secret_namespace = issuer.secret_namespace(self.cluster_resource_namespace)
        secret_name = issuer.spec.auth_secret_name
        try:
            secret_data = self.store.get_secret_data(secret_namespace, secret_name)
        except Exception as e:
            raise GetAuthSecretError(
                f"failed to get Secret containing Issuer credentials, secret name: {secret_namespace}/{secret_name}"
            ) from e

        if SECRET_KEY_AUTH not in secret_data:
            raise AuthSecretKeyMissingError(
                f"secret {secret_namespace}/{secret_name} does not contain the {SECRET_KEY_AUTH!r} field"
            )

        try:
            checker = self.health_checker_builder.build(issuer.spec, secret_data)
        except Exception as e:
            raise HealthCheckerBuilderError("failed to build the health checker") from e

        try:
            checker.check()
        except Exception as e:
            raise HealthCheckerCheckError("health check failed") from e

    @staticmethod
    def _failure_reason(error: CfsslIssuerError) -> str:
        for error_type, reason in FAILURE_REASONS.items():
            if isinstance(error, error_type):
                return reason
        return REASON_HEALTH_CHECK_FAILED

    def _report(
        self,
        issuer: ScopedIssuer,
        status: str,
        reason: str,
        message: str,
        result: Result,
        event_message: str,
        warning: bool,
    ) -> Result:
        """Write the Ready condition and emit one event, only if it changed.

        A write rejected because the issuer changed meanwhile turns into a retry.
        """
        if not issuer.conditions.set(COND_READY, status, reason, message):
            return result
        try:
            self.store.update_issuer_status(
                self.kind,
                issuer.name,
                issuer.namespace,
                issuer.status_patch(),
                resource_version=issuer.resource_version,
            )
        except StatusConflictError as e:
            self.log_info(issuer.name, issuer.namespace, "Issuer changed while reconciling, retrying",
                          uid=issuer.uid, event="conflict", reason="Conflict")
            return Result.retry_with(e)
        self.log_info(
            issuer.name,
            issuer.namespace,
            "Ready condition updated",
            uid=issuer.uid,
            event="status_updated",
            reason=reason,
            status=status,
        )
        self.record_event(issuer.body, event_message, warning)
        return result


# Handler instances, one per issuer kind, created at operator startup.
_handlers: dict[str, IssuerHandler] = {}
_locks = KeyedLock()


def setup(
    config: OperatorConfig,
    store: ResourceStore,
    builder: Builder[HealthChecker],
    recorder: EventRecorder = emit_event,
) -> None:
    """Create the Issuer and ClusterIssuer handlers."""
    for kind in (KIND_ISSUER, KIND_CLUSTER_ISSUER):
        _handlers[kind] = IssuerHandler(
            kind,
            store,
            builder,
            cluster_resource_namespace=config.cluster_resource_namespace,
            health_check_interval=config.health_check_interval,
            recorder=recorder,
            reconcile_timeout=config.request_timeout,
        )


def _reconcile(kind: str, meta: dict[str, Any], retry: int) -> None:
    handler = _handlers.get(kind)
    if handler is None:
        raise kopf.TemporaryError("issuer handlers are not initialised yet", delay=1)
    name = meta.get("name", "")
    namespace = meta.get("namespace") if kind == KIND_ISSUER else None
    with _locks.hold(f"{kind}/{namespace or ''}/{name}"):
        result = handler.run(name, namespace)
    apply_result(result, retry)


@kopf.on.create(API_GROUP_VERSION, KIND_ISSUER)
@kopf.on.update(API_GROUP_VERSION, KIND_ISSUER)
@kopf.on.resume(API_GROUP_VERSION, KIND_ISSUER)
def handle_issuer(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle Issuer resource reconciliation."""
    _reconcile(KIND_ISSUER, meta, retry)


@kopf.timer(
    API_GROUP_VERSION,
    KIND_ISSUER,
    interval=get_config().health_check_interval,
    initial_delay=get_config().health_check_interval,
)
def recheck_issuer(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Periodically re-run the Issuer health check."""
    _reconcile(KIND_ISSUER, meta, retry)


@kopf.on.create(API_GROUP_VERSION, KIND_CLUSTER_ISSUER)
@kopf.on.update(API_GROUP_VERSION, KIND_CLUSTER_ISSUER)
@kopf.on.resume(API_GROUP_VERSION, KIND_CLUSTER_ISSUER)
def handle_cluster_issuer(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle ClusterIssuer resource reconciliation."""
    _reconcile(KIND_CLUSTER_ISSUER, meta, retry)


@kopf.timer(
    API_GROUP_VERSION,
    KIND_CLUSTER_ISSUER,
    interval=get_config().health_check_interval,
    initial_delay=get_config().health_check_interval,
)
def recheck_cluster_issuer(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Periodically re-run the ClusterIssuer health check."""
    _reconcile(KIND_CLUSTER_ISSUER, meta, retry)
