"""Service that sends text to the device and reports what it echoes back."""

from __future__ import annotations

from typing import Any

from qdbhost.service import Service, Signal, StreamPacket

ECHO_TAG = b"ECHO"


class EchoService(Service):
    """Sends strings over an echo stream; ``echo`` fires with each reply."""

    def __init__(self, connection: Any, tag: bytes = ECHO_TAG) -> None:
        super().__init__()
        self._connection = connection
        self._tag = tag
        self.echo = Signal()

    def initialize(self) -> None:
        self._connection.create_stream(self._tag, self.stream_created)

    def has_stream(self) -> bool:
        return self.stream is not None

    def send(self, text: str) -> None:
        """Send ``text`` as UTF-8; raises NoStreamError without a stream."""
        stream = self._require_stream()
        stream.write(StreamPacket(text.encode("utf-8")))

    def close(self) -> None:
        self._require_stream().request_close()

    def receive(self, packet: StreamPacket) -> None:
        self.echo.emit(packet.buffer.decode("utf-8", errors="replace"))