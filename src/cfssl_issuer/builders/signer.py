"""Builder for CFSSL signer and health checker instances."""

from __future__ import annotations

from typing import Protocol, TypeVar

from ..constants import SECRET_KEY_ADDITIONAL_DATA, SECRET_KEY_AUTH
from ..resources import IssuerSpec
from ..services.cfssl.auth import StandardAuthProvider
from ..services.cfssl.client import CfsslRemote
from ..services.cfssl.signer import CfsslSigner
from ..utils.errors import AuthProviderError, AuthSecretKeyMissingError

T_co = TypeVar("T_co", covariant=True)


class Builder(Protocol[T_co]):
    """Strategy turning an issuer spec and its secret into a capability."""

    def build(self, spec: IssuerSpec, secret_data: dict[str, bytes]) -> T_co:
        ...


def create_cfssl_signer_from_spec(
    spec: IssuerSpec,
    secret_data: dict[str, bytes],
    timeout: float = 30.0,
    ca_bundle: str | None = None,
) -> CfsslSigner:
    """Create a CFSSL signer from an issuer spec and its credential secret.

    Args:
        spec: Issuer spec
        secret_data: Decoded credential secret data
        timeout: Per-request timeout for the signing API
        ca_bundle: Optional CA bundle used to verify the signing API

    Returns:
        Configured CfsslSigner, usable as Signer and HealthChecker

    Raises:
        AuthSecretKeyMissingError: If the secret has no ``key`` entry
        AuthProviderError: If the key is not a valid hex string
    """
    if SECRET_KEY_AUTH not in secret_data:
        raise AuthSecretKeyMissingError(f"secret does not contain the {SECRET_KEY_AUTH!r} field")

    try:
        key = secret_data[SECRET_KEY_AUTH].decode("utf-8")
    except UnicodeDecodeError as e:
        raise AuthProviderError("failed creating cfssl auth provider: key is not valid UTF-8") from e

    auth_provider = StandardAuthProvider(key, secret_data.get(SECRET_KEY_ADDITIONAL_DATA))
    remote = CfsslRemote(spec.urls, auth_provider, timeout=timeout, ca_bundle=ca_bundle)
    return CfsslSigner(remote, label=spec.label, profile=spec.profile, bundle=spec.bundle)


class CfsslBuilder:
    """Builder producing CfsslSigner instances for both reconcilers."""

    def __init__(self, timeout: float = 30.0, ca_bundle: str | None = None) -> None:
        self.timeout = timeout
        self.ca_bundle = ca_bundle

    def build(self, spec: IssuerSpec, secret_data: dict[str, bytes]) -> CfsslSigner:
        return create_cfssl_signer_from_spec(spec, secret_data, timeout=self.timeout, ca_bundle=self.ca_bundle)
