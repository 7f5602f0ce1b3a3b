"""Error taxonomy and sanitization utilities."""

from __future__ import annotations

import re
from typing import Any


class CfsslIssuerError(Exception):
    """Base class for all reconciliation errors.

    ``retryable`` tells the reconcilers whether the failure should be handed
    back to the engine for a backoff retry or recorded as a terminal state.
    """

    retryable = True


class ResourceNotFound(CfsslIssuerError):
    """The requested object does not exist in the store."""

    retryable = False


# Validation errors: malformed input, never retried.


class ValidationError(CfsslIssuerError):
    retryable = False


class InvalidRequestError(ValidationError):
    """The CSR could not be parsed."""


class UnrecognisedIssuerKindError(ValidationError):
    """The issuer kind is neither Issuer nor ClusterIssuer."""


class InvalidIssuerSpecError(ValidationError):
    """A mandatory issuer spec field is empty."""


# Configuration errors: the operator has to fix something, but the engine
# keeps retrying with backoff in case the secret is fixed later.


class ConfigurationError(CfsslIssuerError):
    pass


class AuthProviderError(ConfigurationError):
    """The authentication key in the credential secret is malformed."""


class AuthSecretKeyMissingError(ConfigurationError):
    """The credential secret has no ``key`` entry."""


class HealthCheckerBuilderError(ConfigurationError):
    """The health checker could not be constructed."""


class SignerBuilderError(ConfigurationError):
    """The signer could not be constructed."""


# Dependencies not ready yet: transient.


class DependencyNotReadyError(CfsslIssuerError):
    pass


class GetIssuerError(DependencyNotReadyError):
    """The referenced Issuer or ClusterIssuer could not be fetched."""


class IssuerNotReadyError(DependencyNotReadyError):
    """The referenced issuer does not have Ready=True."""


class GetAuthSecretError(DependencyNotReadyError):
    """The credential secret could not be fetched."""


class StatusConflictError(CfsslIssuerError):
    """The object changed since it was read; the status write was rejected."""


# Remote API failures: transient.


class BackendError(CfsslIssuerError):
    pass


class BackendProtocolError(BackendError):
    """The signing API answered with a response missing mandatory fields."""


class HealthCheckerCheckError(BackendError):
    """The health check against the signing API failed."""


class SignerSignError(BackendError):
    """The signing API failed to sign the request."""


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"token[\"']?[:=\s]+[\"']?([A-Za-z0-9/+=]{16,})",
    r"key[\"']?[:=\s]+[\"']?([0-9a-fA-F]{16,})",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "additional_data",
    "password",
    "secret",
    "token",
    "key",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message.

    The message of a chained cause is appended, so wrapper errors such as
    ``SignerSignError`` still carry the underlying reason.
    """
    error_msg = str(error) or type(error).__name__
    cause = error.__cause__
    if cause is not None and str(cause) and str(cause) not in error_msg:
        error_msg = f"{error_msg}: {cause}"
    return sanitize_error_message(error_msg)


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields."""
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in all_sensitive:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
