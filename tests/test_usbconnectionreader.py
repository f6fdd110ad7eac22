import pytest

from qdbhost.usbconnectionreader import (
    MAX_CONSECUTIVE_ERRORS,
    QUIT_CHECKING_TIMEOUT,
    TransferTimeout,
    UsbConnectionReader,
)


class ScriptedTransfer:
    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def __call__(self, size, timeout):
        self.calls.append((size, timeout))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def _reader(results, size=64):
    transfer = ScriptedTransfer(results)
    reader = UsbConnectionReader(transfer, size)
    reads = []
    reader.new_read.connect(reads.append)
    return reader, transfer, reads


def test_read_uses_half_second_timeout():
    reader, transfer, _ = _reader([b"x"], size=16)
    reader.execute_read()
    assert transfer.calls == [(16, 0.5)]


def test_successful_read_emits_data():
    reader, transfer, reads = _reader([b"hello"])
    assert reader.execute_read() is True
    assert reads == [b"hello"]
    assert transfer.calls == [(64, QUIT_CHECKING_TIMEOUT)]


def test_timeout_is_not_an_error():
    reader, _, reads = _reader([TransferTimeout()] * 10)
    assert all(reader.execute_read() for _ in range(10))
    assert reads == []
    assert reader.error_count == 0


def test_five_errors_end_reading():
    reader, _, reads = _reader([OSError("pipe")] * 5)
    results = [reader.execute_read() for _ in range(5)]
    assert results == [True, True, True, True, False]
    assert reads == [b""]


def test_error_limit_matches_constant():
    reader, _, reads = _reader([OSError("pipe")] * MAX_CONSECUTIVE_ERRORS)
    results = [reader.execute_read() for _ in range(MAX_CONSECUTIVE_ERRORS)]
    assert results[-1] is False
    assert all(results[:-1])
    assert reads == [b""]


def test_success_resets_error_count():
    reader, _, reads = _reader([OSError()] * 4 + [b"ok"] + [OSError()] * 4)
    results = [reader.execute_read() for _ in range(9)]
    assert all(results)
    assert reads == [b"ok"]
    assert reader.error_count == 4


def test_run_stops_after_failure():
    reader, transfer, reads = _reader([b"a", TransferTimeout(), b"b"] + [OSError()] * 5)
    reader.run()
    assert reads == [b"a", b"b", b""]
    assert transfer.results == []


def test_stop_prevents_reading():
    reader, transfer, _ = _reader([b"never"])
    reader.stop()
    reader.run()
    assert transfer.calls == []


def test_non_os_error_propagates():
    reader, _, _ = _reader([RuntimeError("bug")])
    with pytest.raises(RuntimeError):
        reader.execute_read()