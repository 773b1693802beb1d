import io

import pytest
from PIL import Image

from netroute.ipvideo import (
    NO_RESIZE,
    ImageQuality,
    IPVideoConnection,
    IPVideoFrame,
    IPVideoFrameQueue,
    IPVideoFrameSettings,
    IPVideoRoute,
    IPVideoRouteSettings,
    parse_flag,
)


class Clock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class StopOnFlush(io.BytesIO):
    def __init__(self, connection, clock=None, advance_to=None):
        super().__init__()
        self.connection = connection
        self.clock = clock
        self.advance_to = advance_to

    def flush(self):
        super().flush()
        if self.clock is not None:
            self.clock.now = self.advance_to
        self.connection.stop()


class BrokenStream(io.BytesIO):
    def write(self, data):
        raise OSError("client went away")


class FakeResponse:
    def __init__(self, stream=None):
        self.status = 200
        self.reason = ""
        self.headers = {}
        self.stream = stream if stream is not None else io.BytesIO()

    def send(self):
        return self.stream


def make_frame(n):
    return IPVideoFrame(IPVideoFrameSettings(), n, bytes([n]))


def two_tone(width=32, height=16):
    image = Image.new("RGB", (width, height), (255, 0, 0))
    image.paste((0, 0, 255), (width // 2, 0, width, height))
    return image


def test_queue_drops_oldest_beyond_max():
    queue = IPVideoFrameQueue(2)
    for n in range(4):
        queue.push(make_frame(n))
    assert len(queue) == 2
    assert queue.pop().timestamp == 2
    assert queue.pop().timestamp == 3
    assert queue.pop() is None
    assert queue.empty()


def test_queue_shrinking_max_size_trims():
    queue = IPVideoFrameQueue(5)
    for n in range(5):
        queue.push(make_frame(n))
    queue.max_size = 1
    assert queue.max_size == 1
    assert len(queue) == 1
    assert queue.pop().timestamp == 4


def test_queue_clear_and_negative_size():
    queue = IPVideoFrameQueue(3)
    queue.push(make_frame(1))
    queue.clear()
    assert queue.empty()
    with pytest.raises(ValueError):
        IPVideoFrameQueue(-1)


@pytest.mark.parametrize("value", ["1", "true", "TRUE", "t", "Y", "yes", "Yes"])
def test_parse_flag_true(value):
    assert parse_flag(value) is True


@pytest.mark.parametrize("value", ["0", "no", "false", "", "yess"])
def test_parse_flag_false(value):
    assert parse_flag(value) is False


def test_default_settings():
    settings = IPVideoRouteSettings()
    assert settings.route_path_pattern == "/ipvideo"
    assert settings.boundary_marker == "--boundary"
    assert settings.media_type == "multipart/x-mixed-replace"
    assert settings.frame_settings.width == NO_RESIZE
    assert settings.frame_settings.quality is ImageQuality.BEST


def test_apply_query_flips_size_and_quality():
    settings = IPVideoRouteSettings(max_stream_width=100, max_stream_height=50)
    connection = IPVideoRoute(settings).create_connection()
    connection.apply_query("vflip=yes&hflip=0&size=640X20&quality=low")
    fs = connection.frame_settings
    assert fs.flip_vertical is True
    assert fs.flip_horizontal is False
    assert fs.width == 100
    assert fs.height == 20
    assert fs.quality is ImageQuality.LOW


def test_apply_query_ignores_bad_values():
    connection = IPVideoRoute().create_connection()
    connection.apply_query("size=abcxdef&quality=superb")
    assert connection.frame_settings == IPVideoFrameSettings()
    connection.apply_query("size=10x0")
    assert connection.frame_settings.width == NO_RESIZE


def test_send_rejects_missing_image():
    with pytest.raises(ValueError):
        IPVideoRoute().send(None)


def test_send_pushes_jpeg_to_every_connection():
    clock = Clock(1.5)
    route = IPVideoRoute(clock=clock)
    first, second = route.create_connection(), route.create_connection()
    route.add_connection(first)
    route.add_connection(second)
    route.send(two_tone())
    a, b = first.pop(), second.pop()
    assert a is b
    assert a.buffer[:2] == b"\xff\xd8"
    assert a.timestamp == 1500
    assert Image.open(io.BytesIO(a.buffer)).size == (32, 16)


def test_send_resizes_and_flips():
    settings = IPVideoRouteSettings(
        frame_settings=IPVideoFrameSettings(width=16, height=8, flip_horizontal=True)
    )
    route = IPVideoRoute(settings)
    connection = route.create_connection()
    route.add_connection(connection)
    route.send(two_tone())
    decoded = Image.open(io.BytesIO(connection.pop().buffer)).convert("RGB")
    assert decoded.size == (16, 8)
    red, _, blue = decoded.getpixel((1, 4))
    assert blue > red
    red, _, blue = decoded.getpixel((14, 4))
    assert red > blue


def test_handle_request_rejects_when_full():
    route = IPVideoRoute(IPVideoRouteSettings(max_client_connections=1))
    route.add_connection(route.create_connection())
    response = FakeResponse()
    route.create_connection().handle_request("/ipvideo", response)
    assert response.status == 503
    assert route.num_connections() == 1


def test_handle_request_invalid_uri():
    route = IPVideoRoute()
    response = FakeResponse()
    route.create_connection().handle_request("http://[::1/ipvideo", response)
    assert response.status == 500
    assert response.reason == "Request URI Invalid."
    assert route.num_connections() == 0


def test_handle_request_streams_frame():
    clock = Clock(0.0)
    route = IPVideoRoute(clock=clock, poll_interval=0)
    connection = route.create_connection()
    frame = IPVideoFrame(IPVideoFrameSettings(), 0, b"JPEGDATA")
    connection.push(frame)
    stream = StopOnFlush(connection, clock, 2.0)
    response = FakeResponse(stream)
    connection.handle_request("/ipvideo?hflip=1", response)

    output = stream.getvalue()
    expected = (
        b"--boundary\r\nContent-Type: image/jpeg\r\nContent-Length: 8\r\n\r\nJPEGDATA"
    )
    assert output == expected
    assert response.headers["Content-Type"] == "multipart/x-mixed-replace; boundary=--boundary"
    assert response.headers["Expires"] == "Thu, 01 Jan 1970 00:00:00 GMT"
    assert connection.frame_settings.flip_horizontal is True
    assert connection.bytes_sent == len(output)
    assert connection.frames_sent == 1
    assert connection.current_bit_rate() == pytest.approx(len(output) * 8 / 2.0)
    assert connection.current_frame_rate() == pytest.approx(0.5)
    assert route.num_connections() == 0


def test_handle_request_broken_stream_removes_connection():
    route = IPVideoRoute(poll_interval=0)
    connection = route.create_connection()
    connection.push(make_frame(1))
    connection.handle_request("/ipvideo", FakeResponse(BrokenStream()))
    assert route.num_connections() == 0
    assert connection.bytes_sent == 0


def test_route_stop_stops_connections():
    route = IPVideoRoute()
    connections = [route.create_connection() for _ in range(3)]
    for connection in connections:
        route.add_connection(connection)
    route.stop()
    assert [c.running for c in connections] == [False, False, False]
    route.remove_connection(connections[1])
    assert route.num_connections() == 2


def test_connection_queue_size_follows_settings():
    route = IPVideoRoute(IPVideoRouteSettings(max_client_queue_size=2))
    connection = IPVideoConnection(route)
    for n in range(5):
        connection.push(make_frame(n))
    assert len(connection) == 2
    assert connection.current_bit_rate() == 0.0