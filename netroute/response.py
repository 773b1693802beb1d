"""HTTP client responses with buffering and content decoding."""

from __future__ import annotations

import io
import json
import re
import xml.etree.ElementTree as ElementTree
from os import PathLike
from pathlib import Path
from typing import Any, BinaryIO, Mapping, Optional, Union

from PIL import Image

from netroute.progress import UNKNOWN_CONTENT_LENGTH
from netroute.request import _Headers

CONTENT_RANGE = "Content-Range"
BYTES_UNIT = "bytes"


def _leading_int(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


class Response:
    """An HTTP response whose body can be read as a stream or buffered."""

    def __init__(
        self,
        status: int = 200,
        reason: str = "",
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, BinaryIO, None] = None,
    ) -> None:
        self.status = status
        self.reason = reason
        self.headers = _Headers((headers or {}).items())
        if isinstance(body, (bytes, bytearray)):
            self.headers.setdefault("Content-Length", str(len(body)))
            body = io.BytesIO(bytes(body))
        self._stream: Optional[BinaryIO] = body
        self._buffer: Optional[bytes] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    def _media_type(self) -> tuple[str, str]:
        main = self.content_type.split(";", 1)[0].strip().lower()
        kind, _, sub = main.partition("/")
        return kind, sub

    def _matches(self, kind: str, sub: Optional[str] = None) -> bool:
        actual_kind, actual_sub = self._media_type()
        return actual_kind == kind and (sub is None or actual_sub == sub)

    def estimated_content_length(self) -> int:
        """Length from Content-Length or a "bytes a-b/n" Content-Range."""
        value = self.headers.get("Content-Length")
        if value is not None:
            return int(value)
        tokens = self.headers.get(CONTENT_RANGE, "").split()
        if len(tokens) == 2 and tokens[0] == BYTES_UNIT:
            if len([t for t in tokens[1].split("/") if t.strip()]) == 2:
                range_tokens = [t for t in tokens[1].split("-") if t.strip()]
                if len(range_tokens) == 2:
                    start = _leading_int(range_tokens[0])
                    end = _leading_int(range_tokens[1])
                    if end > start:
                        return end - start + 1
        return UNKNOWN_CONTENT_LENGTH

    def is_bufferable(self) -> bool:
        return self.estimated_content_length() != UNKNOWN_CONTENT_LENGTH

    @property
    def is_buffered(self) -> bool:
        return self._buffer is not None

    def _buffer_response(self) -> None:
        if self.is_bufferable() and self._buffer is None:
            self._buffer = self._stream.read() if self._stream is not None else b""

    def buffer(self) -> bytes:
        """The whole body if it can be buffered, otherwise empty."""
        self._buffer_response()
        return self._buffer or b""

    def stream(self) -> BinaryIO:
        """A readable stream over the body."""
        self._buffer_response()
        if self._buffer is not None:
            return io.BytesIO(self._buffer)
        return self._stream if self._stream is not None else io.BytesIO()

    def is_pixels(self) -> bool:
        return self._matches("image")

    def pixels(self) -> Image.Image:
        """Decode the body as an image; raises ValueError if that fails."""
        try:
            image = Image.open(io.BytesIO(self.buffer()))
            image.load()
        except (OSError, Image.UnidentifiedImageError) as exc:
            raise ValueError(f"Unable to load pixels: {exc}") from exc
        return image

    def is_json(self) -> bool:
        return self._matches("application", "json") or self._matches("text", "json")

    def json(self) -> Any:
        """Parse the body as JSON; raises ValueError on malformed data."""
        return json.loads(self.stream().read())

    def is_xml(self) -> bool:
        return self._matches("application", "xml") or self._matches("text", "xml")

    def xml(self) -> ElementTree.Element:
        """Parse the buffered body as XML; raises ParseError on malformed data."""
        return ElementTree.fromstring(self.buffer())

    def to_file(self, path: Union[str, "PathLike[str]"]) -> None:
        Path(path).write_bytes(self.buffer())

    def is_informational(self) -> bool:
        return 100 <= self.status < 200

    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def is_redirection(self) -> bool:
        return 300 <= self.status < 400

    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def is_server_error(self) -> bool:
        return self.status >= 500

    def status_and_reason(self) -> str:
        return f"{self.status}: {self.reason}"