"""Utilities for reading Kubernetes secrets."""

from __future__ import annotations

import base64

from kubernetes import client

from .errors import ResourceNotFound


def decode_secret_data(data: dict[str, str | bytes] | None) -> dict[str, bytes]:
    """Decode the base64 ``data`` map of a Secret into raw bytes."""
    result: dict[str, bytes] = {}
    for key, value in (data or {}).items():
        if isinstance(value, bytes):
            result[key] = value
        else:
            result[key] = base64.b64decode(value)
    return result


def read_secret_data(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    timeout: float | None = None,
) -> dict[str, bytes]:
    """Read all data from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        timeout: Request timeout in seconds

    Returns:
        Dictionary of secret data (decoded)

    Raises:
        ResourceNotFound: If secret not found
    """
    try:
        secret = api.read_namespaced_secret(
            name=secret_name,
            namespace=namespace,
            _request_timeout=timeout,
        )
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ResourceNotFound(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise
    return decode_secret_data(secret.data)
