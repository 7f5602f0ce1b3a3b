"""Handler modules for the issuer and CertificateRequest resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import certificaterequest  # noqa: F401
from . import issuer  # noqa: F401
