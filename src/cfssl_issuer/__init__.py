"""cert-manager external issuer backed by CFSSL."""

__version__ = "0.1.0"
