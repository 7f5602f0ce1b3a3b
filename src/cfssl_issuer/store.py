"""Kubernetes-backed resource store used by the reconcilers."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from kubernetes import client

from . import metrics
from .constants import (
    API_GROUP,
    API_VERSION,
    CERT_MANAGER_GROUP,
    CERT_MANAGER_VERSION,
    FIELD_MANAGER,
    ISSUER_PLURALS,
    KIND_CLUSTER_ISSUER,
    PLURAL_CERTIFICATE_REQUESTS,
)
from .utils.context import remaining_timeout
from .utils.errors import ResourceNotFound, StatusConflictError, UnrecognisedIssuerKindError
from .utils.secrets import read_secret_data


class ResourceStore(Protocol):
    """Operations the reconcilers need from the object store."""

    def get_issuer(self, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        ...

    def get_certificate_request(self, namespace: str, name: str) -> dict[str, Any]:
        ...

    def get_secret_data(self, namespace: str, name: str) -> dict[str, bytes]:
        ...

    def update_issuer_status(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        ...

    def update_certificate_request_status(
        self,
        namespace: str,
        name: str,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        ...


@contextmanager
def _api_call(operation: str, what: str) -> Iterator[None]:
    """Record metrics for a single Kubernetes API call.

    A 404 from the API server is translated into ResourceNotFound and a 409
    into StatusConflictError.
    """
    start_time = time.time()
    try:
        yield
        metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
    except ResourceNotFound:
        metrics.api_call_total.labels(api_type="k8s", operation=operation, result="not_found").inc()
        raise
    except client.exceptions.ApiException as e:
        if e.status == 404:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="not_found").inc()
            raise ResourceNotFound(f"{what} not found") from e
        if e.status == 409:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="conflict").inc()
            raise StatusConflictError(f"{what} was modified concurrently") from e
        metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
        raise
    except Exception:
        metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)


def _status_body(status: dict[str, Any], resource_version: str | None) -> dict[str, Any]:
    """Build a status merge patch.

    With a resourceVersion the API server answers 409 if the object changed
    since it was read.
    """
    body: dict[str, Any] = {"status": status}
    if resource_version:
        body["metadata"] = {"resourceVersion": resource_version}
    return body


class KubernetesStore:
    """ResourceStore implementation on top of the official kubernetes client."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi | None = None,
        core_api: client.CoreV1Api | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()
        self.request_timeout = request_timeout

    def _timeout(self) -> float:
        return remaining_timeout(self.request_timeout)

    def get_issuer(self, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        plural = ISSUER_PLURALS.get(kind)
        if plural is None:
            raise UnrecognisedIssuerKindError(f"unrecognised issuer kind: {kind!r}")
        with _api_call(f"get_{kind.lower()}", f"{kind} '{name}'"):
            if kind == KIND_CLUSTER_ISSUER:
                return self.custom_api.get_cluster_custom_object(
                    group=API_GROUP,
                    version=API_VERSION,
                    plural=plural,
                    name=name,
                    _request_timeout=self._timeout(),
                )
            return self.custom_api.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=plural,
                name=name,
                _request_timeout=self._timeout(),
            )

    def get_certificate_request(self, namespace: str, name: str) -> dict[str, Any]:
        with _api_call("get_certificaterequest", f"CertificateRequest '{namespace}/{name}'"):
            return self.custom_api.get_namespaced_custom_object(
                group=CERT_MANAGER_GROUP,
                version=CERT_MANAGER_VERSION,
                namespace=namespace,
                plural=PLURAL_CERTIFICATE_REQUESTS,
                name=name,
                _request_timeout=self._timeout(),
            )

    def get_secret_data(self, namespace: str, name: str) -> dict[str, bytes]:
        with _api_call("get_secret", f"Secret '{namespace}/{name}'"):
            return read_secret_data(self.core_api, namespace, name, timeout=self._timeout())

    def update_issuer_status(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        plural = ISSUER_PLURALS[kind]
        body = _status_body(status, resource_version)
        with _api_call(f"update_{kind.lower()}_status", f"{kind} '{name}'"):
            if kind == KIND_CLUSTER_ISSUER:
                self.custom_api.patch_cluster_custom_object_status(
                    group=API_GROUP,
                    version=API_VERSION,
                    plural=plural,
                    name=name,
                    body=body,
                    field_manager=FIELD_MANAGER,
                    _request_timeout=self._timeout(),
                )
            else:
                self.custom_api.patch_namespaced_custom_object_status(
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=namespace,
                    plural=plural,
                    name=name,
                    body=body,
                    field_manager=FIELD_MANAGER,
                    _request_timeout=self._timeout(),
                )

    def update_certificate_request_status(
        self,
        namespace: str,
        name: str,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        with _api_call("update_certificaterequest_status", f"CertificateRequest '{namespace}/{name}'"):
            self.custom_api.patch_namespaced_custom_object_status(
                group=CERT_MANAGER_GROUP,
                version=CERT_MANAGER_VERSION,
                namespace=namespace,
                plural=PLURAL_CERTIFICATE_REQUESTS,
                name=name,
                body=_status_body(status, resource_version),
                field_manager=FIELD_MANAGER,
                _request_timeout=self._timeout(),
            )


def get_k8s_store(request_timeout: float = 30.0) -> KubernetesStore:
    """Load cluster credentials and return a KubernetesStore."""
    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()

    return KubernetesStore(request_timeout=request_timeout)
