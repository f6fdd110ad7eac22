import pytest

from qdbhost.networkconfigurationservice import (
    ConfigurationResult,
    NetworkConfigurationService,
)
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
    service = NetworkConfigurationService(connection)
    responses = []
    already = []
    service.response.connect(responses.append)
    service.already_set_response.connect(already.append)
    service.initialize()
    return service, stream, connection, responses, already


def test_configure_sends_subnet_string(setup):
    _, stream, _, _, _ = setup
    setup[0].configure("172.16.58.1/30")
    assert StreamPacket(stream.written[0].buffer).read_string() == "172.16.58.1/30"


def test_configure_without_stream_raises():
    service = NetworkConfigurationService(FakeConnection(None))
    with pytest.raises(NoStreamError):
        service.configure("172.16.58.1/30")


@pytest.mark.parametrize(
    "result", [ConfigurationResult.SUCCESS, ConfigurationResult.FAILURE]
)
def test_plain_results_are_emitted(setup, result):
    _, stream, _, responses, already = setup
    stream.packet_available.emit(StreamPacket(StreamPacket().write_uint32(result).buffer))
    assert responses == [result]
    assert already == []


def test_already_set_emits_subnet(setup):
    _, stream, _, responses, already = setup
    data = StreamPacket().write_uint32(ConfigurationResult.ALREADY_SET).write_string("10.17.20.1/30")
    stream.packet_available.emit(StreamPacket(data.buffer))
    assert already == ["10.17.20.1/30"]
    assert responses == []


def test_unknown_result_reports_failure(setup):
    _, stream, _, responses, _ = setup
    stream.packet_available.emit(StreamPacket(StreamPacket().write_uint32(99).buffer))
    assert responses == [ConfigurationResult.FAILURE]


def test_stream_closed_without_answer_reports_failure_once(setup):
    service, stream, connection, responses, _ = setup
    stream.closed.emit()
    connection.disconnected.emit()
    assert responses == [ConfigurationResult.FAILURE]
    assert service.stream is None


def test_disconnect_after_answer_emits_nothing_more(setup):
    _, stream, connection, responses, _ = setup
    stream.packet_available.emit(
        StreamPacket(StreamPacket().write_uint32(ConfigurationResult.SUCCESS).buffer)
    )
    connection.disconnected.emit()
    stream.closed.emit()
    assert responses == [ConfigurationResult.SUCCESS]