"""Service that asks a device for its serial number and addresses."""

from __future__ import annotations

from typing import Any

from qdbhost.service import Service, Signal, StreamPacket

HANDSHAKE_TAG = b"HAND"


class HandshakeService(Service):
    """Emits ``response(serial, mac_address, ip_address)`` exactly once.

    When the stream closes or the connection drops before an answer, the
    response carries empty strings.
    """

    def __init__(self, connection: Any, tag: bytes = HANDSHAKE_TAG) -> None:
        super().__init__()
        self._connection = connection
        self._tag = tag
        self._responded = False
        self.response = Signal()

    def initialize(self) -> None:
        self._connection.disconnected.connect(self.handle_disconnected)
        self._connection.create_stream(self._tag, self.stream_created)

    def ask(self) -> None:
        """Send the handshake request; raises NoStreamError without a stream."""
        stream = self._require_stream()
        stream.write(StreamPacket().write_uint32(0))

    def receive(self, packet: StreamPacket) -> None:
        serial = packet.read_string()
        mac_address = packet.read_string()
        ip_address = packet.read_string()
        self._responded = True
        self.response.emit(serial, mac_address, ip_address)

    def on_stream_closed(self) -> None:
        super().on_stream_closed()
        self._failed_response()

    def handle_disconnected(self) -> None:
        self._failed_response()

    def _failed_response(self) -> None:
        if not self._responded:
            self._responded = True
            self.response.emit("", "", "")