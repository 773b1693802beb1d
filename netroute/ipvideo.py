"""MJPEG (multipart/x-mixed-replace) video streaming over HTTP."""

from __future__ import annotations

import io
import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field, replace
from email.utils import formatdate
from enum import Enum
from typing import BinaryIO, Callable, MutableMapping, Optional, Protocol
from urllib.parse import parse_qsl, urlsplit

from PIL import Image

logger = logging.getLogger(__name__)

NO_RESIZE = -1

_TRUE_FLAGS = frozenset({"1", "true", "t", "y", "yes"})


def parse_flag(value: str) -> bool:
    """Interpret a query flag such as "1", "true", "t", "y" or "yes" (any case)."""
    return value.lower() in _TRUE_FLAGS


class ImageQuality(Enum):
    """JPEG compression quality levels, valued as Pillow quality settings."""

    BEST = 100
    HIGH = 90
    MEDIUM = 75
    LOW = 50
    WORST = 25


@dataclass
class IPVideoFrameSettings:
    """How frames are resized, flipped and compressed before streaming."""

    NO_RESIZE = NO_RESIZE

    width: int = NO_RESIZE
    height: int = NO_RESIZE
    flip_horizontal: bool = False
    flip_vertical: bool = False
    quality: ImageQuality = ImageQuality.BEST


@dataclass(frozen=True)
class IPVideoFrame:
    """A compressed JPEG frame with its settings and timestamp in milliseconds."""

    settings: IPVideoFrameSettings
    timestamp: int
    buffer: bytes


class IPVideoFrameQueue:
    """A thread-safe bounded queue that drops the oldest frames when full."""

    def __init__(self, max_size: int) -> None:
        if max_size < 0:
            raise ValueError(f"max_size must not be negative: {max_size}")
        self._queue_lock = threading.Lock()
        self._max_size = max_size
        self._frames: deque[IPVideoFrame] = deque()

    def _trim(self) -> None:
        while len(self._frames) > self._max_size:
            self._frames.popleft()

    def pop(self) -> Optional[IPVideoFrame]:
        """Remove and return the oldest frame, or None if the queue is empty."""
        with self._queue_lock:
            return self._frames.popleft() if self._frames else None

    def push(self, frame: IPVideoFrame) -> None:
        """Append a frame, dropping the oldest ones beyond max_size."""
        with self._queue_lock:
            self._frames.append(frame)
            self._trim()

    @property
    def max_size(self) -> int:
        with self._queue_lock:
            return self._max_size

    @max_size.setter
    def max_size(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"max_size must not be negative: {value}")
        with self._queue_lock:
            self._max_size = value
            self._trim()

    def __len__(self) -> int:
        with self._queue_lock:
            return len(self._frames)

    def empty(self) -> bool:
        with self._queue_lock:
            return not self._frames

    def clear(self) -> None:
        with self._queue_lock:
            self._frames.clear()


@dataclass
class IPVideoRouteSettings:
    """Settings of an IP video route; a zero connection limit means no limit."""

    DEFAULT_VIDEO_ROUTE = "/ipvideo"
    DEFAULT_BOUNDARY_MARKER = "--boundary"
    DEFAULT_MEDIA_TYPE = "multipart/x-mixed-replace"

    route_path_pattern: str = DEFAULT_VIDEO_ROUTE
    require_secure_port: bool = False
    max_client_connections: int = 5
    max_client_bit_rate: int = 1024
    max_client_frame_rate: int = 30
    max_client_queue_size: int = 10
    max_stream_width: int = 1920
    max_stream_height: int = 1080
    boundary_marker: str = DEFAULT_BOUNDARY_MARKER
    media_type: str = DEFAULT_MEDIA_TYPE
    frame_settings: IPVideoFrameSettings = field(default_factory=IPVideoFrameSettings)


class ResponseLike(Protocol):
    """The part of a server response that a connection needs."""

    status: int
    reason: str
    headers: MutableMapping[str, str]

    def send(self) -> BinaryIO: ...


def _leading_size(text: str) -> int:
    match = re.match(r"\s*\+?(\d+)", text)
    return int(match.group(1)) if match else 0


class IPVideoRoute:
    """A route that compresses images and fans them out to streaming clients."""

    def __init__(
        self,
        settings: Optional[IPVideoRouteSettings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.03,
    ) -> None:
        self.settings = settings if settings is not None else IPVideoRouteSettings()
        self.clock = clock
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._connections: list[IPVideoConnection] = []

    def millis(self) -> int:
        """The route clock in whole milliseconds."""
        return int(self.clock() * 1000)

    def create_connection(self) -> "IPVideoConnection":
        """A new connection handler bound to this route."""
        return IPVideoConnection(self, poll_interval=self.poll_interval)

    def _compress(self, image: Image.Image, settings: IPVideoFrameSettings) -> bytes:
        if (
            settings.width != NO_RESIZE
            or settings.height != NO_RESIZE
            or settings.flip_horizontal
            or settings.flip_vertical
        ):
            width = settings.width if settings.width != NO_RESIZE else image.width
            height = settings.height if settings.height != NO_RESIZE else image.height
            if (width, height) != image.size:
                image = image.resize((width, height))
            if settings.flip_vertical:
                image = image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
            if settings.flip_horizontal:
                image = image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        if image.mode not in ("RGB", "L", "CMYK"):
            image = image.convert("RGB")
        out = io.BytesIO()
        image.save(out, format="JPEG", quality=ImageQuality(settings.quality).value)
        return out.getvalue()

    def send(self, image: Optional[Image.Image]) -> None:
        """Compress an image as JPEG and queue it on every connection."""
        if image is None or image.width == 0 or image.height == 0:
            raise ValueError("Pushing unallocated pixels.")
        timestamp = self.millis()
        frame_settings = replace(self.settings.frame_settings)
        buffer = self._compress(image, frame_settings)
        frame = IPVideoFrame(frame_settings, timestamp, buffer)
        with self._lock:
            for connection in self._connections:
                connection.push(frame)

    def num_connections(self) -> int:
        with self._lock:
            return len(self._connections)

    def stop(self) -> None:
        """Ask every connection to stop, newest first."""
        with self._lock:
            connections = list(reversed(self._connections))
        for connection in connections:
            connection.stop()

    def add_connection(self, connection: "IPVideoConnection") -> None:
        with self._lock:
            self._connections.append(connection)

    def remove_connection(self, connection: "IPVideoConnection") -> None:
        with self._lock:
            self._connections = [c for c in self._connections if c is not connection]


class IPVideoConnection(IPVideoFrameQueue):
    """One client's stream: a frame queue written out as multipart JPEG parts."""

    SERVER_NAME = "netroute IPVideoServer"

    def __init__(self, route: IPVideoRoute, *, poll_interval: float = 0.03) -> None:
        super().__init__(route.settings.max_client_queue_size)
        self._route = route
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._running = True
        self.frame_settings = IPVideoFrameSettings()
        self._start_time = route.clock()
        self._last_frame_sent = 0
        self._last_frame_duration = 0
        self._bytes_sent = 0
        self._frames_sent = 0

    @property
    def route(self) -> IPVideoRoute:
        return self._route

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def bytes_sent(self) -> int:
        with self._lock:
            return self._bytes_sent

    @property
    def frames_sent(self) -> int:
        with self._lock:
            return self._frames_sent

    @property
    def last_frame_duration(self) -> int:
        """Milliseconds between the last two frames sent."""
        with self._lock:
            return self._last_frame_duration

    def apply_query(self, query: str) -> None:
        """Update frame settings from vflip, hflip, size and quality query parameters."""
        params: dict[str, str] = {}
        for name, value in parse_qsl(query, keep_blank_values=True):
            params.setdefault(name, value)

        if "vflip" in params:
            self.frame_settings.flip_vertical = parse_flag(params["vflip"])
        if "hflip" in params:
            self.frame_settings.flip_horizontal = parse_flag(params["hflip"])

        if "size" in params:
            tokens = params["size"].lower().split("x")
            if len(tokens) == 2:
                width = _leading_size(tokens[0])
                height = _leading_size(tokens[1])
                if width > 0 and height > 0:
                    settings = self._route.settings
                    self.frame_settings.width = min(width, settings.max_stream_width)
                    self.frame_settings.height = min(height, settings.max_stream_height)

        if "quality" in params:
            name = params["quality"].upper()
            if name in ImageQuality.__members__:
                self.frame_settings.quality = ImageQuality[name]

    def _part_header(self, length: int) -> bytes:
        return (
            f"{self._route.settings.boundary_marker}\r\n"
            "Content-Type: image/jpeg\r\n"
            f"Content-Length: {length}\r\n"
            "\r\n"
        ).encode("latin-1")

    def handle_request(self, uri: str, response: ResponseLike) -> None:
        """Stream queued frames to the response until stopped or the client goes away."""
        settings = self._route.settings
        limit = settings.max_client_connections
        if limit != 0 and self._route.num_connections() >= limit:
            response.status = 503
            response.reason = "Maximum client connections exceeded. Please try again later."
            return

        try:
            parts = urlsplit(uri)
        except ValueError:
            response.status = 500
            response.reason = "Request URI Invalid."
            return

        self.apply_query(parts.query)
        self._route.add_connection(self)
        try:
            response.headers["Cache-control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Server"] = self.SERVER_NAME
            response.headers["Content-Type"] = (
                f"{settings.media_type}; boundary={settings.boundary_marker}"
            )
            response.headers["Expires"] = formatdate(0, usegmt=True)

            stream = response.send()
            while self.running:
                frame = self.pop()
                if frame is not None:
                    header = self._part_header(len(frame.buffer))
                    stream.write(header)
                    stream.write(frame.buffer)
                    now = self._route.millis()
                    with self._lock:
                        self._last_frame_duration = now - self._last_frame_sent
                        self._last_frame_sent = now
                        self._bytes_sent += len(header) + len(frame.buffer)
                        self._frames_sent += 1
                    stream.flush()
                time.sleep(self._poll_interval)
        except (OSError, ValueError) as exc:
            logger.error("Response stream failed: %s", exc)
        finally:
            self._route.remove_connection(self)

    def stop(self) -> None:
        with self._lock:
            self._running = False

    def _elapsed(self) -> float:
        return self._route.clock() - self._start_time

    def current_bit_rate(self) -> float:
        """Average bits per second sent since the connection was created."""
        elapsed = self._elapsed()
        with self._lock:
            return self._bytes_sent * 8.0 / elapsed if elapsed > 0 else 0.0

    def current_frame_rate(self) -> float:
        """Average frames per second sent since the connection was created."""
        elapsed = self._elapsed()
        with self._lock:
            return self._frames_sent / elapsed if elapsed > 0 else 0.0