"""Typed views over the resources the reconcilers work with."""

from __future__ import annotations

import base64
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .constants import (
    API_GROUP,
    COND_APPROVED,
    COND_DENIED,
    COND_READY,
    DEFAULT_PROFILE,
    KIND_CLUSTER_ISSUER,
    KIND_ISSUER,
    REASON_FAILED,
    STATUS_FALSE,
    STATUS_TRUE,
)
from .utils.conditions import Clock, ConditionSet, utcnow
from .utils.errors import InvalidIssuerSpecError, UnrecognisedIssuerKindError


@dataclass(frozen=True)
class IssuerSpec:
    """Desired state shared by Issuer and ClusterIssuer."""

    url: str
    auth_secret_name: str
    label: str
    profile: str = DEFAULT_PROFILE
    bundle: bool = False

    @classmethod
    def from_dict(cls, spec: dict[str, Any] | None) -> IssuerSpec:
        spec = spec or {}
        return cls(
            url=spec.get("url", "") or "",
            auth_secret_name=spec.get("authSecretName", "") or "",
            label=spec.get("label", "") or "",
            profile=spec.get("profile") or DEFAULT_PROFILE,
            bundle=bool(spec.get("bundle", False)),
        )

    @property
    def urls(self) -> list[str]:
        """The ordered list of signing API endpoints."""
        return [u.strip() for u in self.url.split(",") if u.strip()]

    def validate(self) -> None:
        """Raise InvalidIssuerSpecError if a mandatory field is empty."""
        missing = [
            field
            for field, value in (
                ("url", self.urls),
                ("authSecretName", self.auth_secret_name),
                ("label", self.label),
            )
            if not value
        ]
        if missing:
            raise InvalidIssuerSpecError(f"spec fields must not be empty: {', '.join(missing)}")


class ScopedIssuer(ABC):
    """An issuer object together with the namespace its credentials live in."""

    kind: str = ""

    def __init__(self, body: dict[str, Any], clock: Clock = utcnow):
        self.body = body
        meta = body.get("metadata", {})
        self.name: str = meta.get("name", "")
        self.namespace: str | None = meta.get("namespace")
        self.uid: str = meta.get("uid", "")
        self.resource_version: str | None = meta.get("resourceVersion")
        self.spec = IssuerSpec.from_dict(body.get("spec"))
        self.conditions = ConditionSet.from_status(body.get("status"), clock=clock)

    @abstractmethod
    def scope_namespace(self) -> str | None:
        """Namespace the issuer is scoped to, or None for cluster-scoped kinds."""

    def secret_namespace(self, cluster_resource_namespace: str) -> str:
        """Namespace the credential secret is read from."""
        return self.scope_namespace() or cluster_resource_namespace

    def status_patch(self) -> dict[str, Any]:
        return {"conditions": self.conditions.to_list()}


class Issuer(ScopedIssuer):
    kind = KIND_ISSUER

    def scope_namespace(self) -> str | None:
        return self.namespace


class ClusterIssuer(ScopedIssuer):
    kind = KIND_CLUSTER_ISSUER

    def scope_namespace(self) -> str | None:
        return None


ISSUER_CLASSES: dict[str, type[ScopedIssuer]] = {
    KIND_ISSUER: Issuer,
    KIND_CLUSTER_ISSUER: ClusterIssuer,
}


def issuer_class_for(kind: str) -> type[ScopedIssuer]:
    """Return the issuer variant for a kind.

    Raises:
        UnrecognisedIssuerKindError: If the kind is not an issuer kind
    """
    try:
        return ISSUER_CLASSES[kind]
    except KeyError:
        raise UnrecognisedIssuerKindError(f"unrecognised issuer kind: {kind!r}") from None


def _b64decode(value: str | None) -> bytes | None:
    if not value:
        return None
    return base64.b64decode(value)


def _b64encode(value: bytes | None) -> str | None:
    if value is None:
        return None
    return base64.b64encode(value).decode("ascii")


class CertificateRequest:
    """A cert-manager CertificateRequest as seen by this issuer."""

    def __init__(self, body: dict[str, Any], clock: Clock = utcnow):
        self.body = body
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        status = body.get("status") or {}
        self.name: str = meta.get("name", "")
        self.namespace: str = meta.get("namespace", "")
        self.uid: str = meta.get("uid", "")
        self.resource_version: str | None = meta.get("resourceVersion")
        self.csr: bytes = _b64decode(spec.get("request")) or b""
        self.issuer_ref: dict[str, str] = dict(spec.get("issuerRef") or {})
        self.conditions = ConditionSet.from_status(status, clock=clock)
        self.certificate: bytes | None = _b64decode(status.get("certificate"))
        self.ca: bytes | None = _b64decode(status.get("ca"))
        self.failure_time: str | None = status.get("failureTime")
        self._original_status = copy.deepcopy(self.status_patch())

    @property
    def issuer_group(self) -> str:
        return self.issuer_ref.get("group", "")

    @property
    def issuer_kind(self) -> str:
        return self.issuer_ref.get("kind", "") or KIND_ISSUER

    @property
    def issuer_name(self) -> str:
        return self.issuer_ref.get("name", "")

    def is_for_group(self, group: str = API_GROUP) -> bool:
        return self.issuer_group == group

    def is_approved(self) -> bool:
        return self.conditions.has(COND_APPROVED, STATUS_TRUE)

    def is_denied(self) -> bool:
        return self.conditions.has(COND_DENIED, STATUS_TRUE)

    def is_ready(self) -> bool:
        return self.conditions.has(COND_READY, STATUS_TRUE)

    def is_failed(self) -> bool:
        ready = self.conditions.get(COND_READY)
        return (
            ready is not None
            and ready.status == STATUS_FALSE
            and ready.reason == REASON_FAILED
            and self.failure_time is not None
        )

    def status_patch(self) -> dict[str, Any]:
        patch: dict[str, Any] = {"conditions": self.conditions.to_list()}
        if self.certificate is not None:
            patch["certificate"] = _b64encode(self.certificate)
        if self.ca is not None:
            patch["ca"] = _b64encode(self.ca)
        if self.failure_time is not None:
            patch["failureTime"] = self.failure_time
        return patch

    def status_changed(self) -> bool:
        return self.status_patch() != self._original_status
