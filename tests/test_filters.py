from netroute.credentials import OAuth10Credentials, OAuth20Credentials
from netroute.filters import OAuth10RequestFilter, OAuth20RequestFilter
from netroute.request import Request


def _creds(consumer_secret="secret", access_token="token"):
    return OAuth10Credentials(
        consumer_key="placeholder",
        consumer_secret=consumer_secret,
        access_token=access_token,
        access_token_secret="secret",
    )


def _sign(creds, uri="http://example.com/api?x=1"):
    request = Request("GET", uri)
    OAuth10RequestFilter(creds, nonce_factory=lambda: "nonce", clock=lambda: 1000).request_filter(
        None, request
    )
    return request.headers["Authorization"]


def test_oauth10_header_fields():
    header = _sign(_creds())
    assert header.startswith("OAuth ")
    assert 'oauth_signature_method="HMAC-SHA1"' in header
    assert 'oauth_consumer_key="placeholder"' in header
    assert 'oauth_token="token"' in header
    assert "oauth_signature=" in header


def test_oauth10_deterministic():
    first = _sign(_creds())
    assert 'oauth_nonce="nonce"' in first
    assert 'oauth_timestamp="1000"' in first
    assert first == _sign(_creds())


def test_oauth10_signature_depends_on_secret_and_uri():
    base = _sign(_creds())
    assert _sign(_creds(consumer_secret="token")) != base
    assert _sign(_creds(), uri="http://example.com/api?x=2") != base


def test_oauth10_no_token_when_absent():
    assert "oauth_token" not in _sign(_creds(access_token=""))


def test_oauth20_bearer():
    request = Request("GET", "http://example.com")
    OAuth20RequestFilter(OAuth20Credentials("token")).request_filter(None, request)
    assert request.headers["authorization"] == "Bearer token"


def test_oauth20_custom_scheme():
    request = Request("GET", "http://example.com")
    OAuth20RequestFilter(OAuth20Credentials("token", "Token")).request_filter(None, request)
    assert request.headers["Authorization"] == "Token token"