from __future__ import annotations

import pytest
import serial

from ssterm.core.errors import TransportConfigError, TransportConnectError, TransportIOError
from ssterm.core.model import SerialSettings
from ssterm.transports import serial_port
from ssterm.transports.serial_port import SerialConnection, SerialTransport


class FakeSerial:
    open_error: Exception | None = None

    def __init__(self) -> None:
        self.port = None
        self.is_open = False
        self.in_waiting = 0
        self.incoming = b""
        self.written: list[bytes] = []

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    def read(self, size: int) -> bytes:
        data, self.incoming = self.incoming[:size], self.incoming[size:]
        self.in_waiting = len(self.incoming)
        return data

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        self.written.append(data)
        return len(data)

    def close(self) -> None:
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch: pytest.MonkeyPatch) -> type[FakeSerial]:
    monkeypatch.setattr(FakeSerial, "open_error", None)
    monkeypatch.setattr(serial_port.serial, "Serial", FakeSerial)
    return FakeSerial


def test_open_applies_line_settings(fake_serial) -> None:
    settings = SerialSettings(parity="E", data_bits=7, stop_bits=2)

    connection = SerialTransport().open("/dev/ttyACM0", settings, baudrate=115200)

    port = connection._port
    assert port.port == "/dev/ttyACM0"
    assert port.baudrate == 115200
    assert port.parity == serial.PARITY_EVEN
    assert port.bytesize == serial.SEVENBITS
    assert port.stopbits == serial.STOPBITS_TWO
    assert port.timeout == 0
    assert port.dtr and port.rts
    assert connection.is_open


def test_busy_port_maps_to_connect_error(fake_serial, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(fake_serial, "open_error", serial.SerialException("[Errno 13] Permission denied"))
    with pytest.raises(TransportConnectError, match="already in use"):
        SerialTransport().open("COM4", SerialSettings(), baudrate=9600)


def test_unsupported_baud_maps_to_config_error(fake_serial, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(fake_serial, "open_error", ValueError("Cannot configure port"))
    with pytest.raises(TransportConfigError, match="12345"):
        SerialTransport().open("COM4", SerialSettings(), baudrate=12345)


def test_connection_reads_only_waiting_bytes() -> None:
    port = FakeSerial()
    port.open()
    port.incoming = b"abc"
    port.in_waiting = 3
    connection = SerialConnection(port)

    assert connection.read_available() == b"abc"
    assert connection.read_available() == b""


def test_connection_write_failure_maps_to_io_error() -> None:
    port = FakeSerial()
    port.port = "COM4"
    connection = SerialConnection(port)
    with pytest.raises(TransportIOError, match="COM4"):
        connection.write(b"x")


def test_invalid_settings_rejected_before_open() -> None:
    with pytest.raises(TransportConfigError):
        SerialSettings(parity="X")
    with pytest.raises(TransportConfigError):
        SerialSettings(data_bits=9)
    with pytest.raises(TransportConfigError):
        SerialSettings(stop_bits=3)
