"""Gives a USB device's network a subnet that is free on the host."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Callable, Optional

from qdbhost.networkconfigurationservice import (
    ConfigurationResult,
    NetworkConfigurationService,
)
from qdbhost.service import Signal
from qdbhost.subnet import Subnet, SubnetPool, reserve_unused_subnet
from qdbhost.usbdevice import UsbDevice

logger = logging.getLogger("qdb.networkconfiguration")


def _is_disconnected(connection: Any) -> bool:
    state = getattr(connection, "state", None)
    if callable(state):
        state = state()
    if state is None:
        return False
    name = getattr(state, "name", state)
    return str(name).lower() == "disconnected"


class NetworkConfigurator:
    """Configures one device's network and emits ``configured(device, success)``."""

    def __init__(
        self,
        pool: Any,
        device: UsbDevice,
        subnet_pool: Optional[SubnetPool] = None,
        service_factory: Callable[[Any], NetworkConfigurationService] = NetworkConfigurationService,
    ) -> None:
        self.device = device
        self._connection = pool.connect(device)
        self._subnet_pool = subnet_pool
        self._service_factory = service_factory
        self._service: Optional[NetworkConfigurationService] = None
        self.configured = Signal()
        self.configured.connect(self._drop_service)

    @property
    def subnet_pool(self) -> SubnetPool:
        return self._subnet_pool if self._subnet_pool is not None else SubnetPool.instance()

    def _drop_service(self, device: UsbDevice, success: bool) -> None:
        self._service = None

    def _fail(self) -> None:
        self.configured.emit(self.device, False)

    def configure(self) -> None:
        """Reserve a free subnet and ask the device to use it."""
        if self._connection is None or _is_disconnected(self._connection):
            logger.warning(
                "Could not configure device %s due to no connection", self.device.serial
            )
            self._fail()
            return

        reservation = reserve_unused_subnet(self.subnet_pool)
        if reservation is None:
            logger.critical(
                "Could not find a free subnet to use for the network of device %s",
                self.device.serial,
            )
            self._fail()
            return

        self.device.reservation = reservation
        subnet_string = str(reservation.subnet)
        logger.debug("Using subnet %s for %s", subnet_string, self.device.serial)

        service = self._service_factory(self._connection)
        self._service = service
        service.response.connect(self.handle_response)
        service.already_set_response.connect(self.handle_already_set_response)
        service.initialized.connect(lambda: service.configure(subnet_string))
        service.initialize()

    def handle_already_set_response(self, subnet: str) -> None:
        """Reuse the subnet the device already has, if it can be reserved."""
        parts = subnet.split("/")
        if len(parts) != 2:
            logger.critical(
                "Invalid already set subnet from device %s : %s", self.device.serial, subnet
            )
            self._fail()
            return

        try:
            address = ipaddress.ip_address(parts[0].strip())
        except ValueError:
            address = None
        try:
            prefix_length = int(parts[1])
        except ValueError:
            prefix_length = 0
        if address is None or not 1 <= prefix_length <= 32:
            logger.critical(
                "Invalid already set subnet from device %s : %s", self.device.serial, subnet
            )
            self._fail()
            return

        reservation = self.subnet_pool.reserve(Subnet(address, prefix_length))
        if reservation is None:
            logger.warning(
                "Could not reserve already set subnet %s for device %s",
                subnet,
                self.device.serial,
            )
            self._fail()
            return

        logger.debug(
            "Reused already set configuration %s for device %s", subnet, self.device.serial
        )
        self.device.reservation = reservation
        self.configured.emit(self.device, True)

    def handle_response(self, result: ConfigurationResult) -> None:
        self.configured.emit(self.device, result == ConfigurationResult.SUCCESS)