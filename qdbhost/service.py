"""Services that talk to a device over a single stream of packets."""

from __future__ import annotations

import abc
import logging
import struct
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger("qdb.services")

_UINT32 = struct.Struct(">I")
_NULL_STRING_LENGTH = 0xFFFFFFFF


class Signal:
    """A list of callbacks that are all called when the signal is emitted."""

    def __init__(self) -> None:
        self._slots: list[Callable[..., Any]] = []

    def connect(self, slot: Callable[..., Any]) -> Callable[[], None]:
        """Call ``slot`` on every emission; returns a function that disconnects it."""
        self._slots.append(slot)

        def disconnect() -> None:
            if slot in self._slots:
                self._slots.remove(slot)

        return disconnect

    def emit(self, *args: Any) -> None:
        for slot in list(self._slots):
            slot(*args)

    def __len__(self) -> int:
        return len(self._slots)


class PacketError(ValueError):
    """A packet did not hold the data that was read from it."""


class NoStreamError(RuntimeError):
    """A service was used before its stream was created or after it closed."""


class StreamPacket:
    """Payload of a stream message with big-endian serialisation helpers."""

    def __init__(self, data: bytes = b"") -> None:
        self._buffer = bytearray(data)
        self._position = 0

    @property
    def buffer(self) -> bytes:
        return bytes(self._buffer)

    def __bytes__(self) -> bytes:
        return self.buffer

    def __len__(self) -> int:
        return len(self._buffer)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StreamPacket):
            return NotImplemented
        return self._buffer == other._buffer

    def __repr__(self) -> str:
        return f"StreamPacket({self.buffer!r})"

    def write_uint32(self, value: int) -> StreamPacket:
        if not 0 <= value <= 0xFFFFFFFF:
            raise ValueError(f"value {value} does not fit in 32 unsigned bits")
        self._buffer += _UINT32.pack(value)
        return self

    def write_string(self, text: str) -> StreamPacket:
        encoded = text.encode("utf-16-be")
        self.write_uint32(len(encoded))
        self._buffer += encoded
        return self

    def _take(self, size: int) -> bytes:
        end = self._position + size
        if end > len(self._buffer):
            raise PacketError(
                f"packet has {len(self._buffer) - self._position} bytes left, {size} needed"
            )
        data = bytes(self._buffer[self._position:end])
        self._position = end
        return data

    def read_uint32(self) -> int:
        (value,) = _UINT32.unpack(self._take(_UINT32.size))
        return value

    def read_string(self) -> str:
        length = self.read_uint32()
        if length == _NULL_STRING_LENGTH:
            return ""
        if length % 2:
            raise PacketError(f"string length {length} is not a whole number of UTF-16 units")
        return self._take(length).decode("utf-16-be")


class Stream(Protocol):
    packet_available: Signal
    closed: Signal

    def write(self, packet: StreamPacket) -> Any: ...

    def request_close(self) -> Any: ...


class Service(abc.ABC):
    """Base of services: owns one stream and reacts to its packets and closing."""

    def __init__(self) -> None:
        self.stream: Optional[Stream] = None
        self.initialized = Signal()

    @abc.abstractmethod
    def initialize(self) -> None:
        """Ask the connection for the service's stream."""

    def stream_created(self, stream: Optional[Stream]) -> None:
        if stream:
            self.stream = stream
            stream.packet_available.connect(self.receive)
            stream.closed.connect(self.on_stream_closed)
            self.initialized.emit()

    @abc.abstractmethod
    def receive(self, packet: StreamPacket) -> None:
        """Handle a packet that arrived on the stream."""

    def on_stream_closed(self) -> None:
        self.stream = None

    def _require_stream(self) -> Stream:
        if self.stream is None:
            raise NoStreamError(f"No valid stream in {type(self).__name__}")
        return self.stream

    def __enter__(self) -> Service:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.stream is not None:
            self.stream.request_close()