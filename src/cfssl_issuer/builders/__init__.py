"""Builders turning issuer specs into signing clients."""

from .signer import Builder, CfsslBuilder, create_cfssl_signer_from_spec

__all__ = ["Builder", "CfsslBuilder", "create_cfssl_signer_from_spec"]
