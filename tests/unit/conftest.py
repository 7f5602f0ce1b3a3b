"""Shared fixtures and in-memory fakes for the unit tests."""

from __future__ import annotations

import base64
import copy
from datetime import datetime, timezone
from typing import Any
from unittest.mock import Mock

import pytest

from cfssl_issuer.constants import (
    API_GROUP,
    API_GROUP_VERSION,
    CERT_MANAGER_GROUP_VERSION,
    KIND_CERTIFICATE_REQUEST,
    KIND_CLUSTER_ISSUER,
    KIND_ISSUER,
)
from cfssl_issuer.services.cfssl.base import SignedCertificate
from cfssl_issuer.utils.errors import ResourceNotFound, StatusConflictError

VALID_CSR = b"""-----BEGIN CERTIFICATE REQUEST-----
MIIBZjCCAQwCAQAwWTEPMA0GA1UEChMGU2ltcGxlMRkwFwYDVQQLExBTaW1wbGUg
Q0ZTU0wgQVBJMSswKQYDVQQDEyJhcGkuc2ltcGxlLWNmc3NsLnN2Yy5jbHVzdGVy
LmxvY2FsMFkwEwYHKoZIzj0CAQYIKoZIzj0DAQcDQgAE8ViNotrUB0RFUl0sFLm/
qrzHu6uQE2SoLq9sEeHDkiHjkSlzBZhJ1CWCvpGzghzRHhBK2pW8PSMbaw8EWIUB
kKBRME8GCSqGSIb3DQEJDjFCMEAwPgYDVR0RBDcwNYIJbG9jYWxob3N0giJhcGku
c2ltcGxlLWNmc3NsLnN2Yy5jbHVzdGVyLmxvY2FshwR/AAABMAoGCCqGSM49BAMC
A0gAMEUCIQCyhfLmHrCw4V4J3r5F5bwlhFLE5VbgsPAIifR6oBU9+wIgHIf2gbkV
yENwRHy2nk7/gUm2wbj9cC7KrS6Cb5UXsRk=
-----END CERTIFICATE REQUEST-----
"""

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
FIXED_TIME_STR = "2024-01-02T03:04:05Z"
EARLIER_TIME_STR = "2023-12-31T00:00:00Z"

AUTH_KEY_HEX = b"0123456789abcdef0123456789abcdef"


def fixed_clock() -> datetime:
    return FIXED_TIME


class FakeStore:
    """In-memory ResourceStore recording every status write."""

    def __init__(self) -> None:
        self.issuers: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.certificate_requests: dict[tuple[str, str], dict[str, Any]] = {}
        self.secrets: dict[tuple[str, str], dict[str, bytes]] = {}
        self.issuer_status_updates: list[tuple[str, str, str | None, dict[str, Any]]] = []
        self.certificate_request_status_updates: list[tuple[str, str, dict[str, Any]]] = []
        self.written_resource_versions: list[str | None] = []
        self.conflict_on_write = False

    def add_issuer(self, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        namespace = meta.get("namespace") if body["kind"] == KIND_ISSUER else None
        self.issuers[(body["kind"], namespace, meta["name"])] = body

    def add_certificate_request(self, body: dict[str, Any]) -> None:
        meta = body["metadata"]
        self.certificate_requests[(meta["namespace"], meta["name"])] = body

    def add_secret(self, namespace: str, name: str, data: dict[str, bytes]) -> None:
        self.secrets[(namespace, name)] = data

    def get_issuer(self, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        try:
            return copy.deepcopy(self.issuers[(kind, namespace, name)])
        except KeyError:
            raise ResourceNotFound(f"{kind} '{name}' not found") from None

    def get_certificate_request(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self.certificate_requests[(namespace, name)])
        except KeyError:
            raise ResourceNotFound(f"CertificateRequest '{namespace}/{name}' not found") from None

    def get_secret_data(self, namespace: str, name: str) -> dict[str, bytes]:
        try:
            return dict(self.secrets[(namespace, name)])
        except KeyError:
            raise ResourceNotFound(f"Secret '{namespace}/{name}' not found") from None

    def _check_conflict(self, what: str, resource_version: str | None) -> None:
        self.written_resource_versions.append(resource_version)
        if self.conflict_on_write:
            raise StatusConflictError(f"{what} was modified concurrently")

    def update_issuer_status(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        self._check_conflict(f"{kind} '{name}'", resource_version)
        self.issuer_status_updates.append((kind, name, namespace, copy.deepcopy(status)))
        self.issuers[(kind, namespace, name)].setdefault("status", {}).update(copy.deepcopy(status))

    def update_certificate_request_status(
        self,
        namespace: str,
        name: str,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> None:
        self._check_conflict(f"CertificateRequest '{namespace}/{name}'", resource_version)
        self.certificate_request_status_updates.append((namespace, name, copy.deepcopy(status)))
        self.certificate_requests[(namespace, name)].setdefault("status", {}).update(copy.deepcopy(status))


class FakeSigner:
    """Signer and HealthChecker returning canned results."""

    def __init__(
        self,
        certificate: bytes = b"CERT",
        ca: bytes | None = None,
        sign_error: Exception | None = None,
        check_error: Exception | None = None,
    ) -> None:
        self.certificate = certificate
        self.ca = ca
        self.sign_error = sign_error
        self.check_error = check_error
        self.signed: list[bytes] = []
        self.checks = 0
        self.bundle = ca is not None

    def sign(self, csr_pem: bytes) -> SignedCertificate:
        self.signed.append(csr_pem)
        if self.sign_error is not None:
            raise self.sign_error
        return SignedCertificate(certificate=self.certificate, ca=self.ca, bundle=self.bundle)

    def check(self) -> None:
        self.checks += 1
        if self.check_error is not None:
            raise self.check_error


class FakeBuilder:
    """Builder handing out a fixed signer, or failing."""

    def __init__(self, signer: FakeSigner | None = None, error: Exception | None = None) -> None:
        self.signer = signer or FakeSigner()
        self.error = error
        self.calls: list[tuple[Any, dict[str, bytes]]] = []

    def build(self, spec: Any, secret_data: dict[str, bytes]) -> FakeSigner:
        self.calls.append((spec, secret_data))
        if self.error is not None:
            raise self.error
        return self.signer


def ready_condition(status: str = "True", reason: str = "Checked", message: str = "") -> dict[str, Any]:
    return {
        "type": "Ready",
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": EARLIER_TIME_STR,
    }


def make_issuer(
    kind: str = KIND_ISSUER,
    name: str = "issuer1",
    namespace: str | None = "ns1",
    spec: dict[str, Any] | None = None,
    conditions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "uid": f"uid-{name}", "resourceVersion": "10"}
    if kind == KIND_ISSUER:
        meta["namespace"] = namespace
    body: dict[str, Any] = {
        "apiVersion": API_GROUP_VERSION,
        "kind": kind,
        "metadata": meta,
        "spec": spec
        if spec is not None
        else {"url": "https://cfssl.example.org", "authSecretName": "issuer1-credentials", "label": "intermediate"},
    }
    if conditions is not None:
        body["status"] = {"conditions": conditions}
    return body


def make_cluster_issuer(name: str = "clusterissuer1", **kwargs: Any) -> dict[str, Any]:
    return make_issuer(kind=KIND_CLUSTER_ISSUER, name=name, namespace=None, **kwargs)


def make_certificate_request(
    name: str = "cr1",
    namespace: str = "ns1",
    issuer_name: str = "issuer1",
    issuer_kind: str = KIND_ISSUER,
    issuer_group: str = API_GROUP,
    conditions: list[dict[str, Any]] | None = None,
    csr: bytes = VALID_CSR,
    status: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "apiVersion": CERT_MANAGER_GROUP_VERSION,
        "kind": KIND_CERTIFICATE_REQUEST,
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}", "resourceVersion": "100"},
        "spec": {
            "request": base64.b64encode(csr).decode("ascii"),
            "issuerRef": {"name": issuer_name, "kind": issuer_kind, "group": issuer_group},
        },
    }
    body["status"] = dict(status or {})
    if conditions is not None:
        body["status"]["conditions"] = conditions
    return body


def initialising_condition() -> dict[str, Any]:
    return ready_condition("False", "Pending", "Initialising Ready condition")


def approved_condition() -> dict[str, Any]:
    return {
        "type": "Approved",
        "status": "True",
        "reason": "cert-manager.io",
        "message": "Certificate request has been approved by cert-manager.io",
        "lastTransitionTime": EARLIER_TIME_STR,
    }


def denied_condition() -> dict[str, Any]:
    return {
        "type": "Denied",
        "status": "True",
        "reason": "Foo",
        "message": "Certificate request has been denied by cert-manager.io",
        "lastTransitionTime": EARLIER_TIME_STR,
    }


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def recorder() -> Mock:
    return Mock()
