"""Process-level configuration for the CFSSL Issuer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from .constants import DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS, DEFAULT_REQUEST_TIMEOUT_SECONDS

SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _default_cluster_resource_namespace() -> str:
    """Namespace the controller itself runs in."""
    namespace = os.getenv("POD_NAMESPACE")
    if namespace:
        return namespace
    try:
        with open(SERVICE_ACCOUNT_NAMESPACE_FILE, encoding="utf-8") as f:
            namespace = f.read().strip()
    except OSError:
        namespace = ""
    return namespace or "default"


@dataclass(frozen=True)
class OperatorConfig:
    """Settings supplied at process startup."""

    cluster_resource_namespace: str
    disable_approved_check: bool = False
    health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    metrics_port: int = 8080
    log_level: str = "INFO"
    ca_bundle: str | None = None

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Build configuration from environment variables."""
        return cls(
            cluster_resource_namespace=os.getenv("CLUSTER_RESOURCE_NAMESPACE")
            or _default_cluster_resource_namespace(),
            disable_approved_check=_env_bool("DISABLE_APPROVED_CHECK"),
            health_check_interval=float(
                os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", str(DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS))
            ),
            request_timeout=float(
                os.getenv("REQUEST_TIMEOUT_SECONDS", str(DEFAULT_REQUEST_TIMEOUT_SECONDS))
            ),
            metrics_port=int(os.getenv("METRICS_PORT", "8080")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            ca_bundle=os.getenv("CFSSL_CA_BUNDLE") or os.getenv("SSL_CERT_FILE") or None,
        )


@lru_cache(maxsize=1)
def get_config() -> OperatorConfig:
    """Return the process-wide configuration, loaded once."""
    return OperatorConfig.from_env()
