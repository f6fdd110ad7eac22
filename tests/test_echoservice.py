import pytest

from qdbhost.echoservice import EchoService
from qdbhost.service import NoStreamError, Signal, StreamPacket


class FakeStream:
    def __init__(self):
        self.packet_available = Signal()
        self.closed = Signal()
        self.written = []
        self.close_requests = 0

    def write(self, packet):
        self.written.append(packet)

    def request_close(self):
        self.close_requests += 1


class FakeConnection:
    def __init__(self, stream):
        self.stream = stream
        self.tags = []
        self.disconnected = Signal()

    def create_stream(self, tag, callback):
        self.tags.append(tag)
        callback(self.stream)


@pytest.fixture
def setup():
    stream = FakeStream()
    connection = FakeConnection(stream)
    service = EchoService(connection)
    return service, stream, connection


def test_initialize_creates_stream(setup):
    service, stream, connection = setup
    assert not service.has_stream()
    service.initialize()
    assert service.has_stream()
    assert len(connection.tags) == 1


def test_send_writes_utf8(setup):
    service, stream, _ = setup
    service.initialize()
    service.send("héllo")
    assert [p.buffer for p in stream.written] == ["héllo".encode("utf-8")]


def test_send_without_stream_raises(setup):
    service, _, _ = setup
    with pytest.raises(NoStreamError):
        service.send("text")


def test_receive_emits_echo(setup):
    service, stream, _ = setup
    service.initialize()
    echoes = []
    service.echo.connect(echoes.append)
    stream.packet_available.emit(StreamPacket("ping".encode("utf-8")))
    assert echoes == ["ping"]


def test_send_then_echo_round_trip(setup):
    service, stream, _ = setup
    service.initialize()
    echoes = []
    service.echo.connect(echoes.append)
    service.send("round trip")
    stream.packet_available.emit(stream.written[0])
    assert echoes == ["round trip"]


def test_close_requests_stream_close(setup):
    service, stream, _ = setup
    service.initialize()
    service.close()
    assert stream.close_requests == 1


def test_stream_closed_removes_stream(setup):
    service, stream, _ = setup
    service.initialize()
    stream.closed.emit()
    assert service.has_stream() is False