import pytest

from qdbhost.handshakeservice import HandshakeService
from qdbhost.service import NoStreamError, Signal, StreamPacket


class FakeStream:
    def __init__(self):
        self.packet_available = Signal()
        self.closed = Signal()
        self.written = []

    def write(self, packet):
        self.written.append(packet)

    def request_close(self):
        self.closed.emit()


class FakeConnection:
    def __init__(self, stream):
        self.stream = stream
        self.disconnected = Signal()

    def create_stream(self, tag, callback):
        callback(self.stream)


@pytest.fixture
def setup():
    stream = FakeStream()
    connection = FakeConnection(stream)
    service = HandshakeService(connection)
    responses = []
    service.response.connect(lambda *args: responses.append(args))
    service.initialize()
    return service, stream, connection, responses


def answer(serial, mac, ip):
    return StreamPacket(
        StreamPacket().write_string(serial).write_string(mac).write_string(ip).buffer
    )


def test_ask_sends_zero():
    stream = FakeStream()
    service = HandshakeService(FakeConnection(stream))
    service.initialize()
    service.ask()
    assert stream.written[0].buffer == b"\x00\x00\x00\x00"


def test_ask_without_stream_raises():
    service = HandshakeService(FakeConnection(None))
    with pytest.raises(NoStreamError):
        service.ask()


def test_receive_emits_response(setup):
    _, stream, _, responses = setup
    stream.packet_available.emit(answer("serial-0000", "00:00:5e:00:53:01", "192.0.2.10"))
    assert responses == [("serial-0000", "00:00:5e:00:53:01", "192.0.2.10")]


def test_stream_closed_without_answer_gives_empty_response(setup):
    service, stream, _, responses = setup
    stream.closed.emit()
    assert responses == [("", "", "")]
    assert service.stream is None


def test_disconnect_without_answer_gives_empty_response_once(setup):
    _, stream, connection, responses = setup
    connection.disconnected.emit()
    stream.closed.emit()
    assert responses == [("", "", "")]


def test_close_after_answer_emits_nothing_more(setup):
    _, stream, connection, responses = setup
    stream.packet_available.emit(answer("s", "m", "i"))
    stream.closed.emit()
    connection.disconnected.emit()
    assert responses == [("s", "m", "i")]