"""Request filters that add OAuth authorization to requests."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, quote, urlsplit

from netroute.credentials import OAuth10Credentials, OAuth20Credentials
from netroute.request import FormEncoding, Request

SIGN_HMAC_SHA1 = "HMAC-SHA1"
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _encode(value: str) -> str:
    return quote(value, safe="-._~")


def _base_url(uri: str) -> str:
    parts = urlsplit(uri)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"
    return f"{scheme}://{host}{parts.path or '/'}"


class OAuth10RequestFilter:
    """Signs requests with OAuth 1.0 HMAC-SHA1."""

    def __init__(
        self,
        credentials: Optional[OAuth10Credentials] = None,
        *,
        nonce_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials if credentials is not None else OAuth10Credentials()
        self._nonce_factory = nonce_factory
        self._clock = clock

    def request_filter(self, context: Any, request: Request) -> None:
        """Set the request's Authorization header."""
        creds = self.credentials
        oauth = {
            "oauth_consumer_key": creds.consumer_key,
            "oauth_nonce": self._nonce_factory(),
            "oauth_signature_method": SIGN_HMAC_SHA1,
            "oauth_timestamp": str(int(self._clock())),
            "oauth_version": "1.0",
        }
        if creds.access_token:
            oauth["oauth_token"] = creds.access_token

        pairs = list(oauth.items())
        pairs += parse_qsl(urlsplit(request.uri).query, keep_blank_values=True)
        if request.form.encoding is FormEncoding.URL:
            pairs += list(request.form.fields)
        encoded = sorted((_encode(k), _encode(v)) for k, v in pairs)
        parameters = "&".join(f"{k}={v}" for k, v in encoded)

        base = "&".join(
            [request.method.upper(), _encode(_base_url(request.uri)), _encode(parameters)]
        )
        key = f"{_encode(creds.consumer_secret)}&{_encode(creds.access_token_secret)}"
        digest = hmac.new(key.encode("utf-8"), base.encode("utf-8"), hashlib.sha1).digest()
        oauth["oauth_signature"] = base64.b64encode(digest).decode("ascii")

        request.headers["Authorization"] = "OAuth " + ", ".join(
            f'{_encode(k)}="{_encode(v)}"' for k, v in sorted(oauth.items())
        )


class OAuth20RequestFilter:
    """Adds an OAuth 2.0 bearer token to requests."""

    def __init__(self, credentials: Optional[OAuth20Credentials] = None) -> None:
        self.credentials = credentials if credentials is not None else OAuth20Credentials()

    def request_filter(self, context: Any, request: Request) -> None:
        """Set the request's Authorization header."""
        request.headers["Authorization"] = (
            f"{self.credentials.scheme} {self.credentials.bearer_token}"
        )