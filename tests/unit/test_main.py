"""Tests for operator startup wiring."""

from __future__ import annotations

from unittest.mock import Mock, patch

import kopf

from cfssl_issuer import main
from cfssl_issuer.config import OperatorConfig
from cfssl_issuer.handlers import certificaterequest, issuer


@patch("cfssl_issuer.main.structured_logging")
@patch("cfssl_issuer.main.health")
@patch("cfssl_issuer.main.get_k8s_store")
@patch("cfssl_issuer.main.get_config")
def test_configure_creates_handlers(mock_get_config, mock_get_store, mock_health, mock_logging):
    """Test that startup builds the reconcilers from configuration."""
    mock_get_config.return_value = OperatorConfig(
        cluster_resource_namespace="cfssl-system",
        disable_approved_check=True,
        request_timeout=12.0,
        metrics_port=9999,
    )
    store = Mock()
    mock_get_store.return_value = store
    settings = kopf.OperatorSettings()

    main.configure(settings=settings)

    assert settings.networking.request_timeout == 12.0
    mock_get_store.assert_called_once_with(12.0)
    mock_health.start_server.assert_called_once_with(9999)
    mock_health.set_ready.assert_called_once_with()

    handler = certificaterequest._handler
    assert handler is not None
    assert handler.store is store
    assert handler.check_approved is False
    assert handler.cluster_resource_namespace == "cfssl-system"
    assert handler.signer_builder.timeout == 12.0

    assert set(issuer._handlers) == {"Issuer", "ClusterIssuer"}
    assert issuer._handlers["ClusterIssuer"].cluster_resource_namespace == "cfssl-system"


@patch("cfssl_issuer.main.health")
def test_shutdown_marks_not_ready(mock_health):
    main.shutdown()
    mock_health.set_ready.assert_called_once_with(False)
