"""Host server logging: a log file handler and a cache of recent warnings."""

from __future__ import annotations

import datetime
import logging
import os
import sys
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Optional

MESSAGE_CAPACITY = 200
LOG_FILE_NAME = "qdb.log"
CONSOLE_ENV_VAR = "QDB_LOGGING_TO_CONSOLE"

logger = logging.getLogger(__name__)

MessageCallback = Callable[[int, str], None]


class MessageLog:
    """Keeps the most recent warning-or-worse messages and notifies listeners."""

    _instance: Optional[MessageLog] = None
    _instance_lock = threading.Lock()

    def __init__(self, capacity: int = MESSAGE_CAPACITY) -> None:
        self._lock = threading.Lock()
        self._messages: deque[tuple[int, str]] = deque(maxlen=capacity)
        self._callbacks: list[MessageCallback] = []

    @classmethod
    def instance(cls) -> MessageLog:
        """Return the process-wide message log."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def clear_messages(self) -> None:
        with self._lock:
            self._messages.clear()

    def messages(self) -> list[tuple[int, str]]:
        """Stored (level, text) pairs, oldest first."""
        with self._lock:
            return list(self._messages)

    def emit_new_message(self, level: int, message: str) -> None:
        """Store a message and pass it to every connected callback."""
        with self._lock:
            self._messages.append((level, message))
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(level, message)

    def connect(self, callback: MessageCallback) -> Callable[[], None]:
        """Call ``callback(level, text)`` for new messages; returns a disconnector."""
        with self._lock:
            self._callbacks.append(callback)

        def disconnect() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return disconnect


def _prefix(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "C:"
    if levelno >= logging.WARNING:
        return "W:"
    if levelno >= logging.INFO:
        return "I:"
    return "D:"


class HostLogHandler(logging.Handler):
    """Writes records to the host log file and records warnings in a MessageLog."""

    def __init__(
        self,
        path: os.PathLike | str,
        message_log: Optional[MessageLog] = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self.path = Path(path)
        self._message_log = message_log
        self._stream = None
        self._failed = False
        self.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    @property
    def message_log(self) -> MessageLog:
        return self._message_log if self._message_log is not None else MessageLog.instance()

    def _fall_back(self, reason: str) -> None:
        self._failed = True
        logging.getLogger().removeHandler(self)
        logger.critical(reason)

    def _open(self) -> bool:
        try:
            self._stream = open(self.path, "wb", buffering=0)
        except OSError:
            self._fall_back(f"Could not open log file {self.path}")
            return False
        stamp = datetime.datetime.now().isoformat(timespec="seconds")
        self._stream.write(f"-- Starting QDB host server log on {stamp} --\n".encode("utf-8"))
        return True

    def emit(self, record: logging.LogRecord) -> None:
        if self._failed:
            return
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return

        with self.lock:
            if self._stream is None and not self._open():
                return

            if record.levelno >= logging.WARNING:
                self.message_log.emit_new_message(record.levelno, message)

            data = f"{_prefix(record.levelno)} {message}\n".encode("utf-8")
            try:
                written = self._stream.write(data)
            except OSError as error:
                self._fall_back(f"Could not write into log file {self.path}: {error}")
                return
            if written != len(data):
                self._fall_back(f"Could not write into log file {self.path}")

    def close(self) -> None:
        with self.lock:
            if self._stream is not None:
                self._stream.close()
                self._stream = None
        super().close()


def _data_location() -> Optional[Path]:
    try:
        home = Path.home()
    except RuntimeError:
        home = None
    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        root = Path(base) if base else (home / "AppData" / "Roaming" if home else None)
    elif sys.platform == "darwin":
        root = home / "Library" / "Application Support" if home else None
    else:
        base = os.environ.get("XDG_DATA_HOME")
        root = Path(base) if base else (home / ".local" / "share" if home else None)
    return root / "qdb" if root is not None else None


def setup_logging() -> Optional[HostLogHandler]:
    """Send log records to the host log file unless console logging is requested.

    Returns the installed handler, or None when logging goes to the console.
    """
    handler = None
    if os.environ.get(CONSOLE_ENV_VAR) != "1":
        location = _data_location()
        if location is None:
            logger.warning(
                "Could not find writable application data location, logging to console"
            )
        else:
            try:
                location.mkdir(parents=True, exist_ok=True)
            except OSError:
                logger.warning(
                    "Application data location %s was not possible to log in, "
                    "logging to console",
                    location,
                )
            else:
                handler = HostLogHandler(location / LOG_FILE_NAME)
                root = logging.getLogger()
                root.addHandler(handler)
                root.setLevel(logging.DEBUG)

    MessageLog.instance()
    return handler