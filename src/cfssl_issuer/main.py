"""Main entry point for the CFSSL Issuer."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from . import handlers
from . import health
from . import logging as structured_logging
from .builders import CfsslBuilder
from .config import get_config
from .constants import API_GROUP
from .store import get_k8s_store
from .tracing import initialize_tracing

logger = logging.getLogger(__name__)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator and create the reconcilers."""
    config = get_config()

    # Set up structured JSON logging
    structured_logging.setup_structured_logging(config.log_level)
    initialize_tracing()

    # Keep kopf's bookkeeping in annotations, CertificateRequest status belongs to cert-manager.
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=API_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=API_GROUP)

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = config.request_timeout
    settings.execution.max_workers = 4

    store = get_k8s_store(config.request_timeout)
    builder = CfsslBuilder(timeout=config.request_timeout, ca_bundle=config.ca_bundle)
    handlers.issuer.setup(config, store, builder)
    handlers.certificaterequest.setup(config, store, builder)

    # Metrics, /healthz and /readyz
    health.start_server(config.metrics_port)
    health.set_ready()

    logger.info(
        "CFSSL issuer configured: cluster_resource_namespace=%s approved_check=%s",
        config.cluster_resource_namespace,
        not config.disable_approved_check,
    )


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    health.set_ready(False)


def run() -> None:
    """Console script entry point, equivalent to ``kopf run -m cfssl_issuer.main -A``."""
    kopf.run(clusterwide=True)
