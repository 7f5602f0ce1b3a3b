"""CFSSL "standard" authentication provider (HMAC-SHA256 with a shared key)."""

from __future__ import annotations

import hashlib
import hmac
import os

from ...utils.errors import AuthProviderError


class StandardAuthProvider:
    """Computes request tokens the CFSSL authsign endpoint accepts.

    The key is a hex string, or ``env:NAME`` to read the hex string from the
    environment variable ``NAME``. ``additional_data`` is appended to every
    request before computing the HMAC.
    """

    def __init__(self, key: str, additional_data: bytes | None = None) -> None:
        key = key.strip()
        if key.startswith("env:"):
            key = os.getenv(key[len("env:"):], "").strip()
        if not key:
            raise AuthProviderError("failed creating cfssl auth provider: empty key")
        try:
            self._key = bytes.fromhex(key)
        except ValueError as e:
            raise AuthProviderError(f"failed creating cfssl auth provider: key is not hex encoded ({e})") from e
        self._additional_data = additional_data or b""

    def token(self, request: bytes) -> bytes:
        return hmac.new(self._key, request + self._additional_data, hashlib.sha256).digest()

    def verify(self, request: bytes, token: bytes) -> bool:
        return hmac.compare_digest(self.token(request), token)
