"""CFSSL signing API client and signer."""

from .auth import StandardAuthProvider
from .base import HealthChecker, Remote, SignedCertificate, Signer
from .client import CfsslRemote, normalize_url
from .signer import CfsslSigner, parse_csr

__all__ = [
    "CfsslRemote",
    "CfsslSigner",
    "HealthChecker",
    "Remote",
    "SignedCertificate",
    "Signer",
    "StandardAuthProvider",
    "normalize_url",
    "parse_csr",
]
