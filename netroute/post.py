"""A server route that accepts POSTed forms, raw bodies and file uploads."""

from __future__ import annotations

import io
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, BinaryIO, Callable, Iterator, Mapping, MutableMapping, Optional, Protocol
from urllib.parse import parse_qsl

from netroute.post_events import (
    PostEventArgs,
    PostFormEventArgs,
    PostUploadEventArgs,
    UploadState,
)

logger = logging.getLogger(__name__)

POST_CONTENT_TYPE_TEXT_PLAIN = "text/plain"
POST_CONTENT_TYPE_MULTIPART = "multipart/form-data"
POST_CONTENT_TYPE_URLENCODED = "application/x-www-form-urlencoded"
POST_CONTENT_TYPE_JSON = "application/json"

_PARAMETER = re.compile(r';\s*([^=;\s]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*)')


def _split_media_type(value: str) -> tuple[str, str, dict[str, str]]:
    """Split a header value into main type, subtype and parameters."""
    main, params = _split_parameters(value)
    kind, _, sub = main.lower().partition("/")
    return kind.strip(), sub.strip(), params


def _split_parameters(value: str) -> tuple[str, dict[str, str]]:
    main, _, rest = value.partition(";")
    params: dict[str, str] = {}
    for name, raw in _PARAMETER.findall(";" + rest if rest else ""):
        raw = raw.strip()
        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
        params[name.lower()] = raw
    return main.strip(), params


def _media_matches(value: str, expected: str) -> bool:
    kind, sub, _ = _split_media_type(value)
    exp_kind, exp_sub, _ = _split_media_type(expected)
    return kind == exp_kind and sub == exp_sub


def _header(headers: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return default


class RequestLike(Protocol):
    """The part of a server request that the POST route reads."""

    headers: Mapping[str, str]
    stream: BinaryIO


class ResponseLike(Protocol):
    """The part of a server response that the POST route writes."""

    status: int
    reason: str
    headers: MutableMapping[str, str]
    sent: bool

    def redirect(self, uri: str) -> None: ...

    def send(self) -> BinaryIO: ...


@dataclass(frozen=True)
class _Exchange:
    request: Any
    response: Any


class _Event:
    """A list of listeners called in the order they were added."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[Any], Any]] = []

    def add(self, listener: Callable[[Any], Any]) -> None:
        self._listeners.append(listener)

    def remove(self, listener: Callable[[Any], Any]) -> None:
        self._listeners = [item for item in self._listeners if item != listener]

    def notify(self, args: Any) -> None:
        for listener in list(self._listeners):
            listener(args)

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass
class PostRouteSettings:
    """Settings of a POST route; a field limit of 0 means no limit."""

    DEFAULT_POST_ROUTE = "/post"
    DEFAULT_POST_FOLDER = "uploads/"
    DEFAULT_POST_REDIRECT = ""
    DEFAULT_POST_BUFFER_SIZE = 8192
    DEFAULT_FIELD_LIMIT = 100
    DEFAULT_MAXIMUM_FILE_UPLOAD_SIZE = 2097152
    DEFAULT_POST_HTTP_METHODS = frozenset({"POST"})

    route_path_pattern: str = DEFAULT_POST_ROUTE
    require_secure_port: bool = False
    require_authentication: bool = False
    http_methods: frozenset = DEFAULT_POST_HTTP_METHODS
    valid_content_types: frozenset = frozenset()
    upload_folder: str = DEFAULT_POST_FOLDER
    upload_redirect: str = DEFAULT_POST_REDIRECT
    write_buffer_size: int = DEFAULT_POST_BUFFER_SIZE
    field_limit: int = DEFAULT_FIELD_LIMIT
    maximum_file_upload_size: int = DEFAULT_MAXIMUM_FILE_UPLOAD_SIZE

    def __post_init__(self) -> None:
        if self.write_buffer_size <= 0:
            raise ValueError("write_buffer_size must be positive.")
        if self.field_limit < 0 or self.maximum_file_upload_size < 0:
            raise ValueError("Limits must not be negative.")
        self.http_methods = frozenset(self.http_methods)
        self.valid_content_types = frozenset(self.valid_content_types)


@dataclass
class PostRouteEvents:
    """Events raised for raw posts, parsed forms and file uploads."""

    on_http_post_event: _Event = field(default_factory=_Event)
    on_http_form_event: _Event = field(default_factory=_Event)
    on_http_upload_event: _Event = field(default_factory=_Event)


class PostRoute:
    """A route that handles HTTP POST requests."""

    def __init__(self, settings: Optional[PostRouteSettings] = None) -> None:
        self.settings = settings if settings is not None else PostRouteSettings()
        self.events = PostRouteEvents()

    def create_request_handler(self) -> "PostRouteHandler":
        return PostRouteHandler(self)


class _FormTooLarge(ValueError):
    pass


def _check_limit(count: int, limit: int) -> None:
    if limit > 0 and count >= limit:
        raise _FormTooLarge("Too many form fields")


def _iter_multipart(body: bytes, boundary: str) -> Iterator[tuple[dict[str, str], bytes]]:
    delimiter = b"--" + boundary.encode("latin-1")
    segments = body.split(delimiter)
    if len(segments) < 2:
        raise ValueError("Multipart body has no boundary.")
    for segment in segments[1:]:
        if segment.startswith(b"--"):
            return
        if segment.startswith(b"\r\n"):
            segment = segment[2:]
        header_blob, separator, content = segment.partition(b"\r\n\r\n")
        if not separator:
            raise ValueError("Malformed multipart part.")
        if content.endswith(b"\r\n"):
            content = content[:-2]
        headers: dict[str, str] = {}
        for line in header_blob.decode("utf-8").split("\r\n"):
            if line.strip():
                name, _, value = line.partition(":")
                headers[name.strip()] = value.strip()
        yield headers, content
    raise ValueError("Multipart body is not terminated.")


class PostRouteHandler:
    """Handles one POST: parses forms, stores uploads and notifies listeners."""

    POST_CONTENT_TYPE_TEXT_PLAIN = POST_CONTENT_TYPE_TEXT_PLAIN
    POST_CONTENT_TYPE_MULTIPART = POST_CONTENT_TYPE_MULTIPART
    POST_CONTENT_TYPE_URLENCODED = POST_CONTENT_TYPE_URLENCODED
    POST_CONTENT_TYPE_JSON = POST_CONTENT_TYPE_JSON

    def __init__(self, route: PostRoute) -> None:
        self.route = route

    def _load_form(
        self,
        content_type: str,
        body: bytes,
        part_handler: "PostRouteFileHandler",
    ) -> dict[str, str]:
        limit = self.route.settings.field_limit
        form: dict[str, str] = {}
        count = 0
        if _media_matches(content_type, POST_CONTENT_TYPE_URLENCODED):
            for name, value in parse_qsl(body.decode("utf-8"), keep_blank_values=True):
                _check_limit(count, limit)
                count += 1
                form.setdefault(name, value)
            return form

        _, _, params = _split_media_type(content_type)
        boundary = params.get("boundary")
        if not boundary:
            raise ValueError("Multipart content type has no boundary.")
        for headers, content in _iter_multipart(body, boundary):
            _check_limit(count, limit)
            count += 1
            disposition = _header(headers, "Content-Disposition", "") or ""
            _, disposition_params = _split_parameters(disposition)
            if "filename" in disposition_params:
                part_handler.handle_part(headers, io.BytesIO(content))
            else:
                name = disposition_params.get("name", "")
                form.setdefault(name, content.decode("utf-8"))
        return form

    def handle_request(self, request: RequestLike, response: ResponseLike) -> None:
        """Handle a POST request and complete the response."""
        try:
            exchange = _Exchange(request, response)
            post_id = str(uuid.uuid4())
            content_type = _header(request.headers, "Content-Type", "") or ""
            settings = self.route.settings

            is_multipart = _media_matches(content_type, POST_CONTENT_TYPE_MULTIPART)
            if is_multipart or _media_matches(content_type, POST_CONTENT_TYPE_URLENCODED):
                if is_multipart and not Path(settings.upload_folder).is_dir():
                    logger.error("Upload folder does not exist and cannot be created.")
                    response.status = 500
                    response.reason = "Internal Server Error"
                    return

                part_handler = PostRouteFileHandler(self.route, exchange, post_id)
                form = self._load_form(content_type, request.stream.read(), part_handler)
                self.route.events.on_http_form_event.notify(
                    PostFormEventArgs(exchange, post_id, MappingProxyType(form))
                )
                destination = form.get("destination", "")
                if destination:
                    response.redirect(destination)
                    return
            else:
                data = request.stream.read()
                self.route.events.on_http_post_event.notify(
                    PostEventArgs(exchange, post_id, data)
                )

            if response.sent:
                return
            if settings.upload_redirect:
                response.redirect(settings.upload_redirect)
                return
            response.status = 200
            response.reason = "OK"
            response.headers["Content-Length"] = "0"
            response.send()
        except Exception as exc:  # noqa: BLE001 - every failure becomes a 500
            response.status = 500
            response.reason = str(exc) or "Internal Server Error"


class PostRouteFileHandler:
    """Writes uploaded file parts into the route's upload folder."""

    def __init__(self, route: PostRoute, event: Any, post_id: str) -> None:
        self.route = route
        self.event = event
        self.post_id = post_id

    def _notify(self, field_name: str, original: str, filename: str,
                content_type: str, size: int, state: UploadState) -> None:
        self.route.events.on_http_upload_event.notify(
            PostUploadEventArgs(
                self.event, self.post_id, field_name, original,
                filename, content_type, size, state,
            )
        )

    def handle_part(self, headers: Mapping[str, str], stream: BinaryIO) -> None:
        """Store one uploaded part, reporting start, progress and finish."""
        settings = self.route.settings
        content_type = _header(headers, "Content-Type")
        if content_type is None:
            logger.error("No Content-Type header.")
            return
        if settings.valid_content_types and not self.is_content_type_valid(content_type):
            logger.error("Invalid content type: %s", content_type)
            return

        disposition = _header(headers, "Content-Disposition")
        if disposition is None or settings.maximum_file_upload_size <= 0:
            return

        _, params = _split_parameters(disposition)
        original = params.get("filename", "")
        field_name = params.get("name", "")
        if not original:
            logger.error("No filename in header.")
            return

        try:
            unique = str(uuid.uuid4()) + Path(original).suffix
            target = (Path(settings.upload_folder) / unique).absolute()
            filename = str(target)
            self._notify(field_name, original, filename, content_type, 0, UploadState.STARTING)
            size = 0
            with open(target, "wb") as out:
                chunk = stream.read(settings.write_buffer_size)
                while chunk:
                    if size > settings.maximum_file_upload_size:
                        logger.error("File upload size exceeded.  Removing file.")
                        out.close()
                        target.unlink(missing_ok=True)
                        return
                    size += len(chunk)
                    out.write(chunk)
                    chunk = stream.read(settings.write_buffer_size)
                    self._notify(field_name, original, filename, content_type,
                                 size, UploadState.PROGRESS)
            self._notify(field_name, original, filename, content_type,
                         size, UploadState.FINISHED)
        except (OSError, ValueError) as exc:
            logger.error("Unable to store upload: %s", exc)

    def is_content_type_valid(self, content_type: str) -> bool:
        """True if the media type matches any of the route's valid types."""
        kind, sub, _ = _split_media_type(content_type)
        for valid in self.route.settings.valid_content_types:
            valid_kind, valid_sub, _ = _split_media_type(valid)
            if valid_kind == "*" or kind == "*":
                return True
            if valid_kind == kind and (valid_sub == "*" or sub == "*" or valid_sub == sub):
                return True
        return False