"""Descriptions of USB devices that expose the debug bridge interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from qdbhost.subnet import SubnetReservation

_UINT8_MAX = 0xFF


def _check_uint8(name: str, value: int) -> None:
    if not 0 <= value <= _UINT8_MAX:
        raise ValueError(f"{name} {value} does not fit in 8 unsigned bits")


@dataclass(frozen=True)
class UsbInterfaceInfo:
    """Number and bulk endpoint addresses of the bridge's USB interface."""

    number: int = 0
    in_address: int = 0
    out_address: int = 0

    def __post_init__(self) -> None:
        _check_uint8("interface number", self.number)
        _check_uint8("in endpoint address", self.in_address)
        _check_uint8("out endpoint address", self.out_address)


@dataclass(frozen=True, order=True)
class UsbAddress:
    """Location of a device on the USB, ordered by bus and then device address."""

    bus_number: int = 0
    device_address: int = 0

    def __post_init__(self) -> None:
        _check_uint8("bus number", self.bus_number)
        _check_uint8("device address", self.device_address)

    def __str__(self) -> str:
        return f"{self.bus_number}:{self.device_address}"


@dataclass
class UsbDevice:
    """A bridge device found on the USB.

    ``usb_device`` is the backend's handle for the device; ``reservation``
    holds the subnet given to the device's network once it is configured.
    """

    serial: str = ""
    address: UsbAddress = field(default_factory=UsbAddress)
    usb_device: Any = None
    interface_info: UsbInterfaceInfo = field(default_factory=UsbInterfaceInfo)
    reservation: Optional[SubnetReservation] = None