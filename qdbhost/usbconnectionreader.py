"""Reading loop that pulls messages from a USB bulk endpoint."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from qdbhost.service import Signal

logger = logging.getLogger("qdb.usb")

# Seconds a single read may block before control returns to check for quitting.
QUIT_CHECKING_TIMEOUT = 0.5
MAX_CONSECUTIVE_ERRORS = 5


class TransferTimeout(TimeoutError):
    """A bulk transfer produced no data before its timeout."""


class UsbConnectionReader:
    """Repeatedly reads up to ``message_size`` bytes and emits ``new_read(data)``.

    ``transfer(size, timeout)`` performs one bulk read; it raises
    TransferTimeout when nothing arrived and OSError on failure. After
    MAX_CONSECUTIVE_ERRORS failures in a row, ``new_read(b"")`` is emitted
    and reading stops.
    """

    def __init__(
        self,
        transfer: Callable[[int, float], bytes],
        message_size: int,
        timeout: float = QUIT_CHECKING_TIMEOUT,
    ) -> None:
        self._transfer = transfer
        self.message_size = message_size
        self.timeout = timeout
        self.error_count = 0
        self.new_read = Signal()
        self._stop = threading.Event()

    def execute_read(self) -> bool:
        """Do one read attempt; return whether reading should go on."""
        try:
            data = self._transfer(self.message_size, self.timeout)
        except TransferTimeout:
            return True
        except OSError as error:
            logger.warning("Could not read from USB connection: %s", error)
            self.error_count += 1
            if self.error_count >= MAX_CONSECUTIVE_ERRORS:
                self.new_read.emit(b"")
                return False
            return True
        self.error_count = 0
        self.new_read.emit(bytes(data[: self.message_size]))
        return True

    def run(self) -> None:
        """Read until the connection fails or ``stop`` is called."""
        while not self._stop.is_set():
            if not self.execute_read():
                break

    def stop(self) -> None:
        self._stop.set()