"""HTTP client requests with form, JSON and multipart bodies."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable, Iterator, MutableMapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Optional
from urllib.parse import urlencode, urlsplit

from netroute.progress import UNKNOWN_CONTENT_LENGTH

logger = logging.getLogger(__name__)

HTTP_GET = "GET"
HTTP_HEAD = "HEAD"
HTTP_POST = "POST"
HTTP_1_1 = "HTTP/1.1"

URL_ENCODED_MEDIA_TYPE = "application/x-www-form-urlencoded"
MULTIPART_MEDIA_TYPE = "multipart/form-data"


class FormError(ValueError):
    """Raised when a form cannot be encoded as requested."""


class _Headers(MutableMapping):
    """A case-insensitive header mapping that keeps the original spelling."""

    def __init__(self, items: Optional[Iterable[tuple[str, str]]] = None) -> None:
        self._items: dict[str, tuple[str, str]] = {}
        for name, value in items or ():
            self[name] = value

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._items[name.lower()] = (name, str(value))

    def __delitem__(self, name: str) -> None:
        key = name.lower()
        if key not in self._items:
            raise KeyError(name)
        self._items.pop(key)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class FormEncoding(Enum):
    """How form data is encoded in a request body."""

    URL = "url"
    MULTIPART = "multipart"


class FormPartType(Enum):
    """Where a form part's content comes from."""

    STRING = "string"
    FILE = "file"


@dataclass(frozen=True)
class FormPart:
    """A named form part holding a string or the path of a file."""

    type: FormPartType
    name: str
    value: str
    media_type: str = "text/plain"


@dataclass(frozen=True)
class _Part:
    name: str
    content: bytes
    filename: Optional[str]
    media_type: str


class Form:
    """Form fields and parts, encoded as URL query or multipart body."""

    def __init__(self, encoding: FormEncoding = FormEncoding.URL) -> None:
        self.encoding = encoding
        self.boundary = "MIME_boundary_" + uuid.uuid4().hex
        self._fields: list[tuple[str, str]] = []
        self._parts: list[_Part] = []

    @property
    def fields(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._fields)

    @property
    def parts(self) -> tuple[_Part, ...]:
        return tuple(self._parts)

    @property
    def content_type(self) -> str:
        if self.encoding is FormEncoding.URL:
            return URL_ENCODED_MEDIA_TYPE
        return f"{MULTIPART_MEDIA_TYPE}; boundary={self.boundary}"

    def add(self, name: str, value: str) -> None:
        """Add a plain name/value field."""
        self._fields.append((name, value))

    def add_part(
        self,
        name: str,
        content: bytes,
        filename: Optional[str] = None,
        media_type: str = "application/octet-stream",
    ) -> None:
        """Add a part; parts can only be sent multipart encoded."""
        self._parts.append(_Part(name, bytes(content), filename, media_type))

    def url_encoded(self) -> str:
        return urlencode(self._fields)

    def _serialize(self) -> bytes:
        if self.encoding is FormEncoding.URL:
            if self._parts:
                raise FormError("Form parts require multipart encoding.")
            return self.url_encoded().encode("ascii")
        out = bytearray()
        delimiter = f"--{self.boundary}\r\n".encode("ascii")
        for name, value in self._fields:
            out += delimiter
            out += f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8")
            out += value.encode("utf-8") + b"\r\n"
        for part in self._parts:
            out += delimiter
            disposition = f'Content-Disposition: form-data; name="{part.name}"'
            if part.filename is not None:
                disposition += f'; filename="{part.filename}"'
            out += f"{disposition}\r\nContent-Type: {part.media_type}\r\n\r\n".encode("utf-8")
            out += part.content + b"\r\n"
        out += f"--{self.boundary}--\r\n".encode("ascii")
        return bytes(out)

    def calculate_content_length(self) -> int:
        """Size of the encoded body in bytes; raises FormError if it cannot be encoded."""
        return len(self._serialize())

    def write(self, stream: BinaryIO) -> None:
        """Write the encoded body to a binary stream."""
        stream.write(self._serialize())

    def prepare_submit(self, request: "Request") -> None:
        """Put the form into the request: query string for GET/HEAD, headers otherwise."""
        if request.method in (HTTP_GET, HTTP_HEAD):
            query = self.url_encoded()
            separator = "&" if "?" in request.uri else "?"
            request.uri = f"{request.uri}{separator}{query}"
        else:
            request.headers["Content-Type"] = self.content_type


class Request:
    """An HTTP request with headers, a form and a unique id."""

    def __init__(self, method: str, uri: str, version: str = HTTP_1_1) -> None:
        self.method = method
        self.uri = uri
        self.version = version
        self.headers = _Headers()
        self.form = Form()
        self.request_id = self.generate_id()

    @staticmethod
    def generate_id() -> str:
        """A new random request id."""
        return str(uuid.uuid4())

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("Content-Type")

    @content_type.setter
    def content_type(self, value: str) -> None:
        self.headers["Content-Type"] = value

    @property
    def content_length(self) -> int:
        value = self.headers.get("Content-Length")
        return UNKNOWN_CONTENT_LENGTH if value is None else int(value)

    @content_length.setter
    def content_length(self, value: int) -> None:
        if value == UNKNOWN_CONTENT_LENGTH:
            self.headers.pop("Content-Length", None)
        else:
            self.headers["Content-Length"] = str(value)

    @property
    def chunked(self) -> bool:
        return self.headers.get("Transfer-Encoding", "").lower() == "chunked"

    def write(self, stream: BinaryIO) -> None:
        """Write the request line and headers using only the path and query."""
        try:
            parts = urlsplit(self.uri)
            target = parts.path + (f"?{parts.query}" if parts.query else "")
        except ValueError as exc:
            logger.warning("Unable to parse URI, using: %s : %s", self.uri, exc)
            target = self.uri
        target = target or "/"
        lines = [f"{self.method} {target} {self.version}"]
        lines += [f"{name}: {value}" for name, value in self.headers.items()]
        stream.write(("\r\n".join(lines) + "\r\n\r\n").encode("latin-1"))

    def prepare_request(self) -> None:
        """Encode the form into the request and settle the content length."""
        self.form.prepare_submit(self)
        if self.uri.endswith("?"):
            self.uri = self.uri[:-1]
        if self.method != HTTP_GET:
            if not self.chunked and self.content_length == UNKNOWN_CONTENT_LENGTH:
                try:
                    self.content_length = self.form.calculate_content_length()
                except FormError:
                    self.content_length = 0
        else:
            self.headers.pop("Content-Length", None)

    def write_request_body(self, stream: BinaryIO) -> None:
        if self.method != HTTP_GET:
            self.form.write(stream)

    def estimated_content_length(self) -> int:
        """Content length from the header or form, or UNKNOWN_CONTENT_LENGTH."""
        if self.method == HTTP_GET:
            return 0
        length = self.content_length
        if length == UNKNOWN_CONTENT_LENGTH:
            try:
                length = self.form.calculate_content_length()
            except FormError:
                length = UNKNOWN_CONTENT_LENGTH
        return length


class JSONRequest(Request):
    """A POST request whose body is a JSON document."""

    JSON_MEDIA_TYPE = "application/json"

    def __init__(self, uri: str, json_data: Any = None, version: str = HTTP_1_1) -> None:
        super().__init__(HTTP_POST, uri, version)
        self.json = json_data
        self._body = b""
        self.content_type = self.JSON_MEDIA_TYPE

    def prepare_request(self) -> None:
        self._body = json.dumps(self.json).encode("utf-8")
        self.content_length = len(self._body)

    def write_request_body(self, stream: BinaryIO) -> None:
        stream.write(self._body)


class PostRequest(Request):
    """A POST request carrying form fields, strings and files."""

    def __init__(self, uri: str, version: str = HTTP_1_1) -> None:
        super().__init__(HTTP_POST, uri, version)

    @property
    def form_encoding(self) -> FormEncoding:
        return self.form.encoding

    @form_encoding.setter
    def form_encoding(self, value: FormEncoding) -> None:
        self.form.encoding = FormEncoding(value)

    def add_form_part(self, part: FormPart) -> None:
        """Add a part; the form switches to multipart encoding."""
        if part.type is FormPartType.STRING:
            self.form.add_part(part.name, part.value.encode("utf-8"), None, part.media_type)
        else:
            path = Path(part.value)
            try:
                content = path.read_bytes()
            except OSError as exc:
                logger.error("Unable to add file %s: %s", path, exc)
            else:
                self.form.add_part(part.name, content, path.name, part.media_type)
        self.form.encoding = FormEncoding.MULTIPART

    def add_form_parts(self, parts: Iterable[FormPart]) -> None:
        for part in parts:
            self.add_form_part(part)

    def add_form_file(
        self, name: str, path: str, media_type: str = "application/octet-stream"
    ) -> None:
        self.add_form_part(FormPart(FormPartType.FILE, name, str(path), media_type))

    def add_form_string(self, name: str, value: str, media_type: str = "text/plain") -> None:
        self.add_form_part(FormPart(FormPartType.STRING, name, value, media_type))