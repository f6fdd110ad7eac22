"""Service that asks a device to configure its network to a given subnet."""

from __future__ import annotations

import enum
import logging
from typing import Any

from qdbhost.service import Service, Signal, StreamPacket

logger = logging.getLogger("qdb.services.networkconfiguration")

NETWORK_CONFIGURATION_TAG = b"NETC"


class ConfigurationResult(enum.IntEnum):
    SUCCESS = 0
    FAILURE = 1
    ALREADY_SET = 2


class NetworkConfigurationService(Service):
    """Emits ``response(result)`` or ``already_set_response(subnet)`` once.

    A closed stream or dropped connection before an answer reports FAILURE.
    """

    def __init__(self, connection: Any, tag: bytes = NETWORK_CONFIGURATION_TAG) -> None:
        super().__init__()
        self._connection = connection
        self._tag = tag
        self._responded = False
        self.response = Signal()
        self.already_set_response = Signal()

    def initialize(self) -> None:
        self._connection.disconnected.connect(self.handle_disconnected)
        self._connection.create_stream(self._tag, self.stream_created)

    def configure(self, subnet: str) -> None:
        """Send the subnet in "address/prefix" form; raises NoStreamError without a stream."""
        stream = self._require_stream()
        stream.write(StreamPacket().write_string(subnet))

    def receive(self, packet: StreamPacket) -> None:
        value = packet.read_uint32()
        try:
            result = ConfigurationResult(value)
        except ValueError:
            logger.critical("Unknown network configuration result %d received from device", value)
            self._failed_response()
            return

        if result is ConfigurationResult.ALREADY_SET:
            subnet = packet.read_string()
            self._responded = True
            self.already_set_response.emit(subnet)
            return

        self._responded = True
        self.response.emit(result)

    def on_stream_closed(self) -> None:
        super().on_stream_closed()
        self._failed_response()

    def handle_disconnected(self) -> None:
        self._failed_response()

    def _failed_response(self) -> None:
        if not self._responded:
            self._responded = True
            self.response.emit(ConfigurationResult.FAILURE)