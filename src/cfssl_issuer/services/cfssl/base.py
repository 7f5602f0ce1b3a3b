"""Interfaces for talking to a CFSSL signing authority."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class SignedCertificate:
    """Result of a signing operation."""

    certificate: bytes
    ca: bytes | None = None
    bundle: bool = False


class Remote(Protocol):
    """Wire-level operations of the CFSSL API.

    Kept minimal so tests can substitute an in-memory fake.
    """

    def sign(self, request: bytes) -> bytes:
        """Sign a serialized JSON request and return the certificate PEM."""
        ...

    def bundle_sign(self, request: bytes) -> tuple[bytes | None, bytes]:
        """Sign a serialized JSON request and return (root CA, bundle) PEMs."""
        ...

    def info(self, request: bytes) -> dict[str, Any]:
        """Query the signer described by a serialized JSON info request."""
        ...


class HealthChecker(Protocol):
    def check(self) -> None:
        """Raise if the signing authority does not recognise the configuration."""
        ...


class Signer(Protocol):
    def sign(self, csr_pem: bytes) -> SignedCertificate:
        """Sign a PEM encoded certificate signing request."""
        ...
