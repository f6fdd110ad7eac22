"""Finding debug bridge devices on the USB and watching them come and go."""

from __future__ import annotations

import logging
import threading
from typing import Any, ContextManager, Iterable, Optional, Protocol, Sequence

from qdbhost.service import Signal
from qdbhost.usbdevice import UsbAddress, UsbDevice, UsbInterfaceInfo

logger = logging.getLogger("qdb.usb")

POLL_INTERVAL = 1.0
UNKNOWN_SERIAL = "???"

_IN_ENDPOINT_INDEX = 1
_OUT_ENDPOINT_INDEX = 0


class _Interface(Protocol):
    number: int
    interface_class: int
    interface_subclass: int
    endpoints: Sequence[int]


class _Backend(Protocol):
    def list_devices(self) -> Iterable[Any]: ...

    def address(self, device: Any) -> UsbAddress: ...

    def interfaces(self, device: Any) -> Sequence[_Interface]: ...

    def open(self, device: Any) -> ContextManager[Any]: ...

    def serial_descriptor(self, device: Any, handle: Any) -> bytes: ...


def decode_serial_number(data: bytes) -> str:
    """Turn a raw UTF-16 string descriptor into a serial number.

    Characters outside Latin-1, and question marks, are dropped; this also
    removes the descriptor's two header bytes, which decode to such a character.
    """
    if len(data) % 2:
        raise ValueError(f"string descriptor length {len(data)} is not even")
    text = data.decode("utf-16-le", errors="replace")
    return "".join(char for char in text if ord(char) <= 0xFF and char != "?")


class UsbDeviceEnumerator:
    """Lists bridge devices and, while monitoring, reports plugs and unplugs.

    ``device_plugged_in(device)`` and ``device_unplugged(address)`` fire from
    polls made while monitoring is on.
    """

    def __init__(
        self,
        backend: _Backend,
        class_id: int,
        subclass_id: int,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self._backend = backend
        self._class_id = class_id
        self._subclass_id = subclass_id
        self.poll_interval = poll_interval
        self.device_plugged_in = Signal()
        self.device_unplugged = Signal()
        self._devices: list[UsbDevice] = []
        self._lock = threading.RLock()
        self._monitoring = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    def _is_qdb_interface(self, interface: _Interface) -> bool:
        return (
            interface.interface_class == self._class_id
            and interface.interface_subclass == self._subclass_id
        )

    def _find_qdb_interface(self, device: Any) -> Optional[UsbInterfaceInfo]:
        try:
            interfaces = self._backend.interfaces(device)
        except OSError as error:
            logger.info(
                "Could not get config descriptor for device at %s : %s",
                self._backend.address(device),
                error,
            )
            return None
        interface = next((i for i in interfaces if self._is_qdb_interface(i)), None)
        if interface is None:
            return None
        try:
            return UsbInterfaceInfo(
                interface.number,
                interface.endpoints[_IN_ENDPOINT_INDEX],
                interface.endpoints[_OUT_ENDPOINT_INDEX],
            )
        except IndexError:
            logger.warning(
                "Bridge interface of device at %s lacks endpoints",
                self._backend.address(device),
            )
            return None

    def _serial_number(self, device: Any, handle: Any) -> str:
        try:
            data = self._backend.serial_descriptor(device, handle)
        except OSError as error:
            logger.warning("Could not get string descriptor of serial number: %s", error)
            return UNKNOWN_SERIAL
        if not data:
            logger.warning("Could not get string descriptor of serial number: empty")
            return UNKNOWN_SERIAL
        try:
            return decode_serial_number(data)
        except ValueError as error:
            logger.warning("Invalid serial number descriptor: %s", error)
            return UNKNOWN_SERIAL

    def _make_device(self, device: Any) -> Optional[UsbDevice]:
        info = self._find_qdb_interface(device)
        if info is None:
            return None
        address = self._backend.address(device)
        try:
            with self._backend.open(device) as handle:
                serial = self._serial_number(device, handle)
        except PermissionError:
            logger.warning(
                "Access to USB device at %s was denied. "
                "Check the manual for setting up access to USB devices.",
                address,
            )
            return None
        except OSError as error:
            logger.warning(
                "Could not open USB device at %s for checking serial number: %s",
                address,
                error,
            )
            return None
        return UsbDevice(serial, address, device, info, None)

    def _scan(self) -> list[UsbDevice]:
        try:
            raw_devices = list(self._backend.list_devices())
        except OSError as error:
            logger.critical("Could not list USB devices: %s", error)
            return []
        found = (self._make_device(device) for device in raw_devices)
        return sorted(
            (device for device in found if device is not None),
            key=lambda device: device.address,
        )

    def poll(self) -> None:
        """Rescan the bus; while monitoring, report devices added and removed."""
        with self._lock:
            devices = self._scan()
            if self._monitoring:
                old = {device.address for device in self._devices}
                new = {device.address for device in devices}
                inserted = [device for device in devices if device.address not in old]
                removed = [device.address for device in self._devices if device.address not in new]
                for device in inserted:
                    self.device_plugged_in.emit(device)
                for address in removed:
                    self.device_unplugged.emit(address)
            self._devices = devices

    def list_usb_devices(self) -> list[UsbDevice]:
        """Rescan and return the bridge devices, ordered by USB address."""
        with self._lock:
            self.poll()
            return list(self._devices)

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.poll()

    def start_monitoring(self) -> None:
        """Poll now and then every ``poll_interval`` seconds in a thread."""
        with self._lock:
            if self._monitoring:
                return
            self._monitoring = True
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="UsbDeviceEnumerator", daemon=True
            )
            self._thread.start()
            self.poll()

    def stop_monitoring(self) -> None:
        with self._lock:
            self._monitoring = False
            self._stop.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self) -> UsbDeviceEnumerator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_monitoring()