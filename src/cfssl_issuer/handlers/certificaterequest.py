"""CertificateRequest reconciliation: sign approved requests addressed to our issuers."""

from __future__ import annotations

from typing import Any

import kopf

from .. import metrics
from ..builders import Builder
from ..config import OperatorConfig, get_config
from ..constants import (
    API_GROUP,
    CERT_MANAGER_GROUP_VERSION,
    COND_READY,
    EVENT_REASON_CERTIFICATE_REQUEST_RECONCILER,
    KIND_CERTIFICATE_REQUEST,
    KIND_ISSUER,
    REASON_DENIED,
    REASON_FAILED,
    REASON_ISSUED,
    REASON_PENDING,
    STATUS_FALSE,
    STATUS_TRUE,
)
from ..resources import CertificateRequest, issuer_class_for
from ..services.cfssl.base import SignedCertificate, Signer
from ..store import ResourceStore
from ..utils.conditions import Clock, format_time, is_ready, utcnow
from ..utils.errors import (
    CfsslIssuerError,
    GetAuthSecretError,
    GetIssuerError,
    IssuerNotReadyError,
    ResourceNotFound,
    SignerBuilderError,
    SignerSignError,
    StatusConflictError,
    ValidationError,
    sanitize_exception,
)
from ..utils.events import EventRecorder, emit_event
from .base import TEMPORARY_ERROR_PREFIX, BaseHandler, KeyedLock, Result, apply_result

MESSAGE_DENIED = "The CertificateRequest was denied by an approval controller"
MESSAGE_SIGNED = "Signed"
MESSAGE_INITIALISING = "Initialising Ready condition"


class CertificateRequestHandler(BaseHandler):
    """Signs CertificateRequests whose issuerRef points at one of our issuers."""

    event_reason = EVENT_REASON_CERTIFICATE_REQUEST_RECONCILER

    def __init__(
        self,
        store: ResourceStore,
        signer_builder: Builder[Signer],
        cluster_resource_namespace: str,
        check_approved: bool = True,
        recorder: EventRecorder = emit_event,
        clock: Clock = utcnow,
        reconcile_timeout: float | None = None,
    ):
        super().__init__(
            KIND_CERTIFICATE_REQUEST, recorder=recorder, clock=clock, reconcile_timeout=reconcile_timeout
        )
        self.store = store
        self.signer_builder = signer_builder
        self.cluster_resource_namespace = cluster_resource_namespace
        self.check_approved = check_approved

    def run(self, namespace: str, name: str) -> Result:
        """Reconcile with metrics, tracing and a correlation ID."""
        return self.reconcile_with_metrics(name, namespace, lambda: self.reconcile(namespace, name))

    def reconcile(self, namespace: str, name: str) -> Result:
        """Drive one CertificateRequest towards Issued, Failed or Denied."""
        try:
            body = self.store.get_certificate_request(namespace, name)
        except ResourceNotFound:
            self.log_info(name, namespace, "CertificateRequest not found, ignoring", event="not_found", reason="NotFound")
            return Result.done()

        request = CertificateRequest(body, clock=self.clock)

        if not request.is_for_group(API_GROUP):
            self.logger.debug("Ignoring CertificateRequest %s/%s for foreign issuer group %r",
                              namespace, name, request.issuer_group)
            return Result.done()

        if request.is_ready():
            return Result.done()

        if request.is_failed():
            return Result.done()

        if self.check_approved:
            if request.is_denied():
                self._set_failure_time(request)
                return self._report(request, STATUS_FALSE, REASON_DENIED, MESSAGE_DENIED, Result.done())

            if not request.is_approved():
                self.log_info(name, namespace, "CertificateRequest has not been approved yet, ignoring",
                              uid=request.uid, event="not_approved", reason="NotApproved")
                return Result.done()

        if request.conditions.get(COND_READY) is None:
            self.log_info(name, namespace, MESSAGE_INITIALISING, uid=request.uid, event="initialising",
                          reason=REASON_PENDING)
            return self._report(request, STATUS_FALSE, REASON_PENDING, MESSAGE_INITIALISING, Result.done())

        try:
            signed = self.sign(request)
        except ValidationError as e:
            self.log_error(name, namespace, "CertificateRequest failed permanently", error=e,
                           uid=request.uid, reason=REASON_FAILED)
            self._set_failure_time(request)
            return self._report(request, STATUS_FALSE, REASON_FAILED, sanitize_exception(e), Result.done())
        except CfsslIssuerError as e:
            self.log_error(name, namespace, "Failed to sign CertificateRequest", error=e,
                           uid=request.uid, reason=REASON_PENDING)
            message = f"{TEMPORARY_ERROR_PREFIX}: {sanitize_exception(e)}"
            return self._report(request, STATUS_FALSE, REASON_PENDING, message, Result.retry_with(e))

        request.certificate = signed.certificate
        request.ca = signed.ca
        metrics.certificates_signed_total.labels(
            issuer_kind=request.issuer_kind, bundle=str(signed.bundle).lower()
        ).inc()
        self.log_info(name, namespace, "Certificate signed", uid=request.uid, event="signed", reason=REASON_ISSUED)
        return self._report(request, STATUS_TRUE, REASON_ISSUED, MESSAGE_SIGNED, Result.done())

    def sign(self, request: CertificateRequest) -> SignedCertificate:
        """Resolve the referenced issuer, build a signer from it and sign the CSR.

        Raises:
            UnrecognisedIssuerKindError: The issuerRef kind is not an issuer kind
            GetIssuerError: The issuer could not be fetched
            IssuerNotReadyError: The issuer is not Ready
            GetAuthSecretError: The credential secret could not be read
            SignerBuilderError: The signer could not be built
            InvalidRequestError: The CSR is not a valid PEM request
            SignerSignError: The signing API failed
        """
        issuer_class = issuer_class_for(request.issuer_kind)
        issuer_namespace = request.namespace if issuer_class.kind == KIND_ISSUER else None

        try:
            body = self.store.get_issuer(issuer_class.kind, request.issuer_name, issuer_namespace)
        except Exception as e:
            raise GetIssuerError(f"failed to get {issuer_class.kind} {request.issuer_name!r}") from e

        issuer = issuer_class(body, clock=self.clock)
        if not is_ready(issuer.conditions):
            raise IssuerNotReadyError(f"{issuer_class.kind} {request.issuer_name!r} is not ready")

        secret_namespace = issuer.secret_namespace(self.cluster_resource_namespace)
        secret_name = issuer.spec.auth_secret_name
        try:
            secret_data = self.store.get_secret_data(secret_namespace, secret_name)
        except Exception as e:
            raise GetAuthSecretError(
                f"failed to get Secret containing Issuer credentials, secret name: {secret_namespace}/{secret_name}"
            ) from e

        try:
            signer = self.signer_builder.build(issuer.spec, secret_data)
        except Exception as e:
            raise SignerBuilderError("failed to build the signer") from e

        try:
            return signer.sign(request.csr)
        except ValidationError:
            raise
        except Exception as e:
            raise SignerSignError("failed to sign the certificate request") from e

    def _set_failure_time(self, request: CertificateRequest) -> None:
        if request.failure_time is None:
            request.failure_time = format_time(self.clock())

    def _report(
        self,
        request: CertificateRequest,
        status: str,
        reason: str,
        message: str,
        result: Result,
    ) -> Result:
        """Persist the status if anything changed and emit one event for a Ready change.

        A write rejected because the request changed meanwhile turns into a retry.
        """
        changed = request.conditions.set(COND_READY, status, reason, message)
        if request.status_changed():
            try:
                self.store.update_certificate_request_status(
                    request.namespace, request.name, request.status_patch(), resource_version=request.resource_version
                )
            except StatusConflictError as e:
                self.log_info(request.name, request.namespace, "CertificateRequest changed while reconciling, retrying",
                              uid=request.uid, event="conflict", reason="Conflict")
                return Result.retry_with(e)
        if changed:
            self.record_event(request.body, message, warning=result.retry or status == STATUS_FALSE)
        return result


_handler: CertificateRequestHandler | None = None
_locks = KeyedLock()


def setup(
    config: OperatorConfig,
    store: ResourceStore,
    builder: Builder[Signer],
    recorder: EventRecorder = emit_event,
) -> None:
    """Create the CertificateRequest handler."""
    global _handler
    _handler = CertificateRequestHandler(
        store,
        builder,
        cluster_resource_namespace=config.cluster_resource_namespace,
        check_approved=not config.disable_approved_check,
        recorder=recorder,
        reconcile_timeout=config.request_timeout,
    )


def _run(meta: dict[str, Any]) -> Result:
    if _handler is None:
        raise kopf.TemporaryError("certificate request handler is not initialised yet", delay=1)
    namespace = meta.get("namespace", "")
    name = meta.get("name", "")
    with _locks.hold(f"{namespace}/{name}"):
        return _handler.run(namespace, name)


def awaiting_issuance(spec: dict[str, Any], status: dict[str, Any], **_: Any) -> bool:
    """Whether a request is addressed to our group and not yet in a final state."""
    if (spec.get("issuerRef") or {}).get("group") != API_GROUP:
        return False
    ready = next((c for c in status.get("conditions") or [] if c.get("type") == COND_READY), None)
    if ready is None:
        return True
    if ready.get("status") == STATUS_TRUE:
        return False
    return not (ready.get("reason") in (REASON_FAILED, REASON_DENIED) and status.get("failureTime"))


@kopf.on.create(CERT_MANAGER_GROUP_VERSION, KIND_CERTIFICATE_REQUEST, when=awaiting_issuance)
@kopf.on.update(CERT_MANAGER_GROUP_VERSION, KIND_CERTIFICATE_REQUEST, when=awaiting_issuance)
@kopf.on.resume(CERT_MANAGER_GROUP_VERSION, KIND_CERTIFICATE_REQUEST, when=awaiting_issuance)
def handle_certificate_request(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle CertificateRequest resource reconciliation."""
    apply_result(_run(meta), retry)


@kopf.on.event(CERT_MANAGER_GROUP_VERSION, KIND_CERTIFICATE_REQUEST, when=awaiting_issuance)
def watch_certificate_request(event: dict[str, Any], meta: dict[str, Any], **kwargs: Any) -> None:
    """React to status-only changes such as approval, which do not trigger update handlers."""
    if event.get("type") != "MODIFIED":
        return
    result = _run(meta)
    if result.retry and _handler is not None:
        _handler.log_info(meta.get("name", ""), meta.get("namespace"),
                          "Reconcile will be retried by the periodic recheck",
                          uid=meta.get("uid", ""), event="retry_deferred", reason=REASON_PENDING)


@kopf.timer(
    CERT_MANAGER_GROUP_VERSION,
    KIND_CERTIFICATE_REQUEST,
    interval=get_config().health_check_interval,
    initial_delay=get_config().health_check_interval,
    when=awaiting_issuance,
)
def recheck_certificate_request(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Retry requests still waiting on an issuer, a secret or the signing API."""
    apply_result(_run(meta), retry)
