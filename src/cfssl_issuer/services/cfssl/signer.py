"""Signer and health checker backed by a CFSSL server."""

from __future__ import annotations

import json
import logging

from cryptography import x509

from ...utils.errors import InvalidRequestError
from .base import Remote, SignedCertificate

logger = logging.getLogger(__name__)


def parse_csr(csr_pem: bytes) -> x509.CertificateSigningRequest:
    """Parse a PEM encoded CSR.

    Raises:
        InvalidRequestError: If the bytes are not a valid PEM CSR
    """
    try:
        return x509.load_pem_x509_csr(csr_pem)
    except ValueError as e:
        raise InvalidRequestError(f"error decoding certificate request PEM block: {e}") from e


class CfsslSigner:
    """Signs CSRs with, and health checks, a CFSSL signer identified by label and profile."""

    def __init__(self, remote: Remote, label: str, profile: str, bundle: bool = False) -> None:
        self.remote = remote
        self.label = label
        self.profile = profile
        self.bundle = bundle

    def check(self) -> None:
        """Ask the info endpoint whether it knows this label/profile pair.

        The info endpoint is unauthenticated, so credentials are not verified
        here; a bad key only shows up when signing.
        """
        request = json.dumps({"label": self.label, "profile": self.profile}).encode("utf-8")
        self.remote.info(request)

    def sign(self, csr_pem: bytes) -> SignedCertificate:
        parse_csr(csr_pem)
        try:
            csr_text = csr_pem.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidRequestError(f"certificate request is not valid UTF-8: {e}") from e

        request = json.dumps(
            {
                "certificate_request": csr_text,
                "label": self.label,
                "profile": self.profile,
                "bundle": self.bundle,
            }
        ).encode("utf-8")
        logger.info(
            json.dumps(
                {"message": "Signing certificate", "label": self.label, "profile": self.profile, "bundle": self.bundle}
            )
        )

        if self.bundle:
            ca, cert = self.remote.bundle_sign(request)
            return SignedCertificate(certificate=cert, ca=ca, bundle=True)
        return SignedCertificate(certificate=self.remote.sign(request))
