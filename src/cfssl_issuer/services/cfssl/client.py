"""HTTP client for the CFSSL signing API."""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any
import requests

from ... import metrics
from ...constants import CFSSL_API_PREFIX, CFSSL_ENDPOINT_AUTHSIGN, CFSSL_ENDPOINT_INFO
from ...tracing import trace_span
from ...utils.context import remaining_timeout
from ...utils.errors import BackendError, BackendProtocolError
from .auth import StandardAuthProvider

logger = logging.getLogger(__name__)


def normalize_url(addr: str) -> str:
    """Trim an endpoint, default its scheme to http and drop trailing slashes."""
    addr = addr.strip()
    if "://" not in addr:
        addr = f"http://{addr}"
    return addr.rstrip("/")


class CfsslRemote:
    """Client for one or more CFSSL servers, tried in order."""

    def __init__(
        self,
        urls: list[str],
        auth_provider: StandardAuthProvider,
        timeout: float = 30.0,
        ca_bundle: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the CFSSL client.

        Args:
            urls: Ordered list of base URLs; later entries are fallbacks
            auth_provider: Provider computing tokens for authsign requests
            timeout: Upper bound in seconds for a single HTTP request
            ca_bundle: Optional CA bundle file used to verify the servers
            session: Optional requests session (mainly for tests)
        """
        if not urls:
            raise ValueError("at least one CFSSL URL is required")
        self.urls = [normalize_url(u) for u in urls]
        self.auth_provider = auth_provider
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = ca_bundle or True

    def _post(self, endpoint: str, payload: bytes) -> dict[str, Any]:
        """POST a payload to each server in order until one answers successfully.

        Returns:
            The ``result`` object of the response envelope

        Raises:
            BackendError: If every server failed; carries the last failure
        """
        last_error = BackendError("no CFSSL servers configured")
        for base_url in self.urls:
            url = f"{base_url}{CFSSL_API_PREFIX}/{endpoint}"
            start_time = time.time()
            try:
                with trace_span(f"cfssl_{endpoint}", attributes={"cfssl.url": url}):
                    result = self._post_one(url, payload)
                metrics.api_call_total.labels(api_type="cfssl", operation=endpoint, result="success").inc()
                return result
            except BackendError as e:
                metrics.api_call_total.labels(api_type="cfssl", operation=endpoint, result="error").inc()
                logger.warning(f"CFSSL request to {url} failed: {e}")
                last_error = e
            finally:
                duration = time.time() - start_time
                metrics.api_call_duration_seconds.labels(api_type="cfssl", operation=endpoint).observe(duration)
        raise last_error

    def _post_one(self, url: str, payload: bytes) -> dict[str, Any]:
        try:
            response = self.session.post(
                url,
                data=payload,
                headers={"Content-Type": "application/json"},
                timeout=remaining_timeout(self.timeout),
            )
        except requests.RequestException as e:
            raise BackendError(f"failed POST to {url}: {e}") from e

        if response.status_code != 200:
            raise BackendError(f"http error with {url}: {response.status_code} {response.text.strip()}")

        try:
            envelope = response.json()
        except ValueError as e:
            raise BackendError(f"unable to parse response body from {url}") from e

        if not isinstance(envelope, dict):
            raise BackendError(f"unexpected response body from {url}")

        result = envelope.get("result")
        if not envelope.get("success") or result is None:
            errors = envelope.get("errors") or []
            if errors and isinstance(errors[0], dict) and errors[0].get("message"):
                raise BackendError(f"server request failed: {errors[0]['message']}")
            raise BackendError("server request failed")

        if not isinstance(result, dict):
            raise BackendProtocolError("response is formatted improperly")
        return result

    def _auth_request(self, request: bytes) -> bytes:
        """Wrap a request in the authenticated envelope authsign expects."""
        envelope = {
            "timestamp": int(time.time()),
            "remote_address": None,
            "token": base64.b64encode(self.auth_provider.token(request)).decode("ascii"),
            "request": base64.b64encode(request).decode("ascii"),
        }
        return json.dumps(envelope).encode("utf-8")

    def sign(self, request: bytes) -> bytes:
        """Sign a request and return the certificate PEM."""
        result = self._post(CFSSL_ENDPOINT_AUTHSIGN, self._auth_request(request))
        cert = result.get("certificate")
        if not isinstance(cert, str) or not cert:
            raise BackendProtocolError("response doesn't contain certificate")
        return cert.encode("utf-8")

    def bundle_sign(self, request: bytes) -> tuple[bytes | None, bytes]:
        """Sign a request and return the root CA (if the server sent one) and the bundle."""
        result = self._post(CFSSL_ENDPOINT_AUTHSIGN, self._auth_request(request))
        bundle = result.get("bundle")
        if not isinstance(bundle, dict):
            raise BackendProtocolError("response doesn't contain bundle")
        cert = bundle.get("bundle")
        if not isinstance(cert, str) or not cert:
            raise BackendProtocolError("response doesn't contain bundle")
        # Not every CFSSL deployment returns the root, so it is optional.
        root = bundle.get("root")
        ca = root.encode("utf-8") if isinstance(root, str) and root else None
        return ca, cert.encode("utf-8")

    def info(self, request: bytes) -> dict[str, Any]:
        """Query the unauthenticated info endpoint."""
        return self._post(CFSSL_ENDPOINT_INFO, request)
