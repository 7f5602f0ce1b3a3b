"""Constants for the CFSSL Issuer."""

# API Group
API_GROUP = "cfssl-issuer.wikimedia.org"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"
CERT_MANAGER_GROUP_VERSION = f"{CERT_MANAGER_GROUP}/{CERT_MANAGER_VERSION}"

# Resource Kinds
KIND_ISSUER = "Issuer"
KIND_CLUSTER_ISSUER = "ClusterIssuer"
KIND_CERTIFICATE_REQUEST = "CertificateRequest"

# Plurals
PLURAL_ISSUERS = "issuers"
PLURAL_CLUSTER_ISSUERS = "clusterissuers"
PLURAL_CERTIFICATE_REQUESTS = "certificaterequests"

ISSUER_PLURALS = {
    KIND_ISSUER: PLURAL_ISSUERS,
    KIND_CLUSTER_ISSUER: PLURAL_CLUSTER_ISSUERS,
}

# Field Manager
FIELD_MANAGER = "cfssl-issuer"

# Condition Types
COND_READY = "Ready"
COND_APPROVED = "Approved"
COND_DENIED = "Denied"

# Condition Statuses
STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

# Issuer Ready reasons
REASON_CHECKED = "Checked"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_AUTH_SECRET_NOT_FOUND = "AuthSecretNotFound"
REASON_AUTH_SECRET_KEY_MISSING = "AuthSecretKeyMissing"
REASON_HEALTH_CHECKER_BUILD_FAILED = "HealthCheckerBuildFailed"
REASON_HEALTH_CHECK_FAILED = "HealthCheckFailed"

# CertificateRequest Ready reasons (cert-manager vocabulary)
REASON_PENDING = "Pending"
REASON_FAILED = "Failed"
REASON_ISSUED = "Issued"
REASON_DENIED = "Denied"

# Event Reasons
EVENT_REASON_ISSUER_RECONCILER = "IssuerReconciler"
EVENT_REASON_CERTIFICATE_REQUEST_RECONCILER = "CertificateRequestReconciler"

# Event Types
EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

# Secret keys
SECRET_KEY_AUTH = "key"
SECRET_KEY_ADDITIONAL_DATA = "additional_data"

# CFSSL API
CFSSL_API_PREFIX = "/api/v1/cfssl"
CFSSL_ENDPOINT_AUTHSIGN = "authsign"
CFSSL_ENDPOINT_INFO = "info"
DEFAULT_PROFILE = "default"

# Defaults
DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS = 60.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
MIN_RETRY_DELAY_SECONDS = 1.0
MAX_RETRY_DELAY_SECONDS = 300.0
