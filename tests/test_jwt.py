import base64
import json

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from netroute.jwt import (
    Algorithm,
    JSONWebSignatureHeader,
    JSONWebTokenHeader,
    JSONWebTokenPayload,
    generate_token,
)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def pem_key(rsa_key):
    return rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def b64url_decode(text):
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def make_header():
    header = JSONWebSignatureHeader()
    header.set_algorithm(Algorithm.RS256)
    header.set_type("JWT")
    header.set_key_id("key-id-1")
    return header


def make_payload():
    payload = JSONWebTokenPayload()
    payload.set_issuer("issuer@example.com")
    payload.set_subject("subject@example.com")
    payload.set_issued_at_time(1000)
    payload.set_expiration_time(4600)
    return payload


def test_header_fields():
    header = make_header()
    assert dict(header.data) == {"alg": "RS256", "typ": "JWT", "kid": "key-id-1"}


def test_compact_string():
    header = JSONWebTokenHeader()
    header.set_type("JWT")
    assert header.as_string() == '{"typ":"JWT"}'


def test_indented_string_round_trips():
    payload = make_payload()
    text = payload.as_string(2)
    assert "\n" in text
    assert json.loads(text) == dict(payload.data)


def test_base64url_has_no_padding_and_decodes():
    header = make_header()
    encoded = header.as_base64url()
    assert "=" not in encoded
    assert b64url_decode(encoded).decode("utf-8") == header.as_string()


def test_audience_drops_adjacent_duplicates():
    payload = JSONWebTokenPayload()
    payload.set_audience(["a", "a", "b", "a"])
    assert payload.data[JSONWebTokenPayload.AUD] == "a b a"


def test_audience_string_is_kept():
    payload = JSONWebTokenPayload()
    payload.set_audience("one two")
    assert payload.data["aud"] == "one two"


def test_clear_removes_claim_and_missing_raises():
    payload = make_payload()
    payload.clear("sub")
    assert "sub" not in payload.data
    with pytest.raises(KeyError):
        payload.clear("sub")


def test_negative_time_rejected():
    with pytest.raises(ValueError):
        JSONWebTokenPayload().set_not_before_time(-1)


def test_data_view_is_read_only():
    header = make_header()
    with pytest.raises(TypeError):
        header.data["alg"] = "none"
    assert header.data["alg"] == "RS256"


def test_generated_token_verifies(rsa_key, pem_key):
    header = make_header()
    payload = make_payload()
    token = generate_token(pem_key, "", header, payload)
    encoded_header, encoded_payload, encoded_signature = token.split(".")
    assert json.loads(b64url_decode(encoded_header)) == dict(header.data)
    assert json.loads(b64url_decode(encoded_payload)) == dict(payload.data)
    signing_input = f"{encoded_header}.{encoded_payload}".encode("ascii")
    rsa_key.public_key().verify(
        b64url_decode(encoded_signature), signing_input, padding.PKCS1v15(), hashes.SHA256()
    )
    assert token.startswith(header.as_base64url() + ".")


def test_tampered_token_fails_verification(rsa_key, pem_key):
    token = generate_token(pem_key, "", make_header(), make_payload())
    encoded_header, _, encoded_signature = token.split(".")
    other = JSONWebTokenPayload()
    other.set_subject("intruder@example.com")
    with pytest.raises(InvalidSignature):
        rsa_key.public_key().verify(
            b64url_decode(encoded_signature),
            f"{encoded_header}.{other.as_base64url()}".encode("ascii"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )


def test_encrypted_key_with_passphrase(rsa_key):
    passphrase = "password"
    encrypted_pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(passphrase.encode("utf-8")),
    )
    token = generate_token(encrypted_pem, passphrase, make_header(), make_payload())
    assert token.count(".") == 2
    plain = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    # PKCS#1 v1.5 signatures are deterministic.
    assert token == generate_token(plain, "", make_header(), make_payload())


def test_empty_key_raises():
    with pytest.raises(ValueError):
        generate_token("", "", make_header(), make_payload())


def test_missing_algorithm_raises(pem_key):
    header = JSONWebSignatureHeader()
    header.set_type("JWT")
    with pytest.raises(ValueError, match="algorithm"):
        generate_token(pem_key, "", header, make_payload())


def test_unsupported_algorithm_raises(pem_key):
    header = JSONWebSignatureHeader()
    header.set(JSONWebSignatureHeader.ALG, "HS256")
    with pytest.raises(ValueError, match="HS256"):
        generate_token(pem_key, "", header, make_payload())


def test_unknown_algorithm_name_rejected():
    with pytest.raises(ValueError):
        JSONWebSignatureHeader().set_algorithm("XX999")