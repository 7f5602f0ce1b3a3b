"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cfssl_issuer.health import create_combined_wsgi_app, is_ready, set_ready


def _environ(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "QUERY_STRING": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "SERVER_PROTOCOL": "HTTP/1.1",
        "wsgi.url_scheme": "http",
    }


def _call(app, path: str) -> tuple[str, bytes]:
    start_response = MagicMock()
    body = b"".join(app(_environ(path), start_response))
    return start_response.call_args[0][0], body


@pytest.fixture(autouse=True)
def reset_ready():
    set_ready(False)
    yield
    set_ready(False)


class TestCombinedWsgiApp:
    """Test cases for the combined metrics and health app."""

    def test_healthz(self):
        status, body = _call(create_combined_wsgi_app(), "/healthz")
        assert status.startswith("200")
        assert b'"status":"ok"' in body

    def test_readyz_before_startup(self):
        status, body = _call(create_combined_wsgi_app(), "/readyz")
        assert status.startswith("503")
        assert b"not ready" in body

    def test_readyz_after_startup(self):
        set_ready()
        status, body = _call(create_combined_wsgi_app(), "/readyz")
        assert status.startswith("200")
        assert b'"status":"ready"' in body

    def test_metrics_delegated_to_prometheus(self):
        status, body = _call(create_combined_wsgi_app(), "/metrics")
        assert status.startswith("200")
        assert b"cfssl_issuer_reconcile" in body


class TestReadiness:
    def test_set_ready_toggles(self):
        assert not is_ready()
        set_ready()
        assert is_ready()
        set_ready(False)
        assert not is_ready()
