"""Prometheus metrics for the CFSSL Issuer."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "cfssl_issuer_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "cfssl_issuer_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "cfssl_issuer_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Issuer health metrics
issuer_health_check_total = Counter(
    "cfssl_issuer_health_check_total",
    "Issuer health check results",
    ["kind", "result"],
)

# Signing metrics
certificates_signed_total = Counter(
    "cfssl_issuer_certificates_signed_total",
    "Total number of certificates signed",
    ["issuer_kind", "bundle"],
)

# API call metrics
api_call_total = Counter(
    "cfssl_issuer_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "cfssl_issuer_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)
