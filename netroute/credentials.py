"""Credentials for OAuth 1.0, OAuth 2.0 and proxy access."""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any, ClassVar, Union

logger = logging.getLogger(__name__)

StrPath = Union[str, "PathLike[str]"]


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class OAuth10Credentials:
    """OAuth 1.0 consumer and access token credentials."""

    consumer_key: str = ""
    consumer_secret: str = ""
    access_token: str = ""
    access_token_secret: str = ""
    owner: str = ""
    owner_id: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "OAuth10Credentials":
        """Build credentials from a JSON object; unknown keys are logged and ignored."""
        if not isinstance(data, Mapping):
            raise TypeError("Credentials JSON must be an object.")
        values: dict[str, str] = {}
        for key, value in data.items():
            field_name = _OAUTH10_ALIASES.get(key)
            if field_name is None:
                logger.warning("Unknown key: %s\n%s", key, json.dumps(value, indent=4))
                continue
            if not isinstance(value, str):
                raise TypeError(f"Value for {key!r} must be a string.")
            values[field_name] = value
        return cls(**values)

    def to_json(self) -> dict[str, str]:
        """Return the credentials as a JSON object."""
        return dataclasses.asdict(self)

    @classmethod
    def from_file(cls, path: StrPath) -> "OAuth10Credentials":
        """Load credentials from a JSON file, or empty credentials if that fails."""
        try:
            text = Path(path).read_text(encoding="utf-8")
            return cls.from_json(json.loads(text))
        except (OSError, ValueError, TypeError) as exc:
            logger.error("Unable to load credentials from %s: %s", path, exc)
            return cls()

    def to_file(self, path: StrPath) -> None:
        """Save the credentials as a JSON file."""
        text = json.dumps(self.to_json(), indent=4, sort_keys=True)
        Path(path).write_text(text, encoding="utf-8")


# Accepted JSON keys: each field's own name and its camel-case spelling.
_OAUTH10_ALIASES: dict[str, str] = {
    alias: field.name
    for field in dataclasses.fields(OAuth10Credentials)
    for alias in (field.name, _camel_case(field.name))
}


@dataclass
class OAuth20Credentials:
    """An OAuth 2.0 bearer token and its authorization scheme."""

    SCHEME: ClassVar[str] = "Bearer"

    bearer_token: str = ""
    scheme: str = SCHEME


@dataclass
class ProxySettings:
    """Host, port and optional credentials of an HTTP proxy."""

    DEFAULT_PROXY_HOST: ClassVar[str] = ""
    DEFAULT_PROXY_PORT: ClassVar[int] = 0

    host: str = DEFAULT_PROXY_HOST
    port: int = DEFAULT_PROXY_PORT
    username: str = ""
    password: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"Port out of range: {self.port}")

    def clear(self) -> None:
        """Reset the credentials, host and port to their defaults."""
        self.username = ""
        self.password = ""
        self.host = self.DEFAULT_PROXY_HOST
        self.port = self.DEFAULT_PROXY_PORT