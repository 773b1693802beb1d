"""JSON Web Token headers, payloads and RS256 signing."""

from __future__ import annotations

import base64
import json
from enum import Enum
from itertools import groupby
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class Algorithm(str, Enum):
    """Supported JSON Web Signature algorithms."""

    RS256 = "RS256"


class JSONWebTokenData:
    """A JSON object forming one part of a token."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    @property
    def data(self) -> Mapping[str, Any]:
        """A read-only view of the claims."""
        return MappingProxyType(self._data)

    def set(self, key: str, value: Any) -> None:
        """Add or replace a claim."""
        self._data[key] = value

    def clear(self, name: str) -> None:
        """Remove a claim; raises KeyError if it is absent."""
        if name not in self._data:
            raise KeyError(name)
        self._data.pop(name)

    def as_string(self, indent: int = -1) -> str:
        """Serialize as JSON; a negative indent gives the compact form."""
        if indent < 0:
            return json.dumps(
                self._data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
            )
        return json.dumps(self._data, sort_keys=True, indent=indent, ensure_ascii=False)

    def as_base64url(self) -> str:
        """The compact JSON, base64url encoded without padding."""
        return _b64url(self.as_string().encode("utf-8"))


class JSONWebTokenHeader(JSONWebTokenData):
    """A JOSE header."""

    TYP = "typ"
    CTY = "cty"

    def set_type(self, type_: str) -> None:
        self.set(self.TYP, type_)

    def set_content_type(self, content_type: str) -> None:
        self.set(self.CTY, content_type)


class JSONWebSignatureHeader(JSONWebTokenHeader):
    """A JOSE header for signed tokens."""

    ALG = "alg"
    JKU = "jku"
    JWK = "jwk"
    KID = "kid"
    X5U = "x5u"
    X5T = "x5t"
    X5C = "x5c"
    CRIT = "crit"

    def set_algorithm(self, algorithm: Union[Algorithm, str]) -> None:
        self.set(self.ALG, Algorithm(algorithm).value)

    def set_key_id(self, key_id: str) -> None:
        self.set(self.KID, key_id)


def _timestamp(time: int) -> int:
    value = int(time)
    if value < 0:
        raise ValueError(f"Time must not be negative: {time}")
    return value


class JSONWebTokenPayload(JSONWebTokenData):
    """The claims set of a token."""

    ISS = "iss"
    AUD = "aud"
    JTI = "jti"
    IAT = "iat"
    EXP = "exp"
    NBF = "nbf"
    TYP = "typ"
    SUB = "sub"

    def set_issuer(self, issuer: str) -> None:
        self.set(self.ISS, issuer)

    def set_audience(self, audience: Union[str, Iterable[str]]) -> None:
        """Set the audience; a sequence is joined by spaces, dropping adjacent repeats."""
        if not isinstance(audience, str):
            audience = " ".join(name for name, _ in groupby(audience))
        self.set(self.AUD, audience)

    def set_id(self, id_: str) -> None:
        self.set(self.JTI, id_)

    def set_issued_at_time(self, time: int) -> None:
        self.set(self.IAT, _timestamp(time))

    def set_expiration_time(self, time: int) -> None:
        self.set(self.EXP, _timestamp(time))

    def set_not_before_time(self, time: int) -> None:
        self.set(self.NBF, _timestamp(time))

    def set_type(self, type_: str) -> None:
        self.set(self.TYP, type_)

    def set_subject(self, subject: str) -> None:
        self.set(self.SUB, subject)


def generate_token(
    private_key: Union[str, bytes],
    passphrase: str,
    header: JSONWebSignatureHeader,
    payload: JSONWebTokenPayload,
) -> str:
    """Sign header and payload with a PEM RSA private key and return the compact token."""
    if not private_key:
        raise ValueError("Private key is empty.")

    alg = header.data.get(JSONWebSignatureHeader.ALG)
    if not isinstance(alg, str):
        raise ValueError("No signature algorithm selected.")
    if alg != Algorithm.RS256.value:
        raise ValueError(f"Signature algorithm: {alg} not supported.")

    signing_input = f"{header.as_base64url()}.{payload.as_base64url()}"

    pem = private_key.encode() if isinstance(private_key, str) else private_key
    password = passphrase.encode() if passphrase else None
    key = serialization.load_pem_private_key(pem, password=password)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("Private key is not an RSA key.")

    signature = key.sign(signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return f"{signing_input}.{_b64url(signature)}"