"""Serial transport and port enumeration backed by pyserial."""

from __future__ import annotations

import logging

import serial
import serial.tools.list_ports

from ssterm.core.errors import (
    TransportConfigError,
    TransportConnectError,
    TransportIOError,
)
from ssterm.core.model import UNKNOWN_ID, RawPort, SerialSettings

WRITE_TIMEOUT_S = 0.25
LOGGER = logging.getLogger(__name__)

_PARITY_MAP = {
    "N": serial.PARITY_NONE,
    "E": serial.PARITY_EVEN,
    "O": serial.PARITY_ODD,
    "M": serial.PARITY_MARK,
    "S": serial.PARITY_SPACE,
}

_STOPBITS_MAP = {
    1.0: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2.0: serial.STOPBITS_TWO,
}

_BYTESIZE_MAP = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


def _format_id(value: int | None) -> str:
    return f"{value:04X}" if value is not None else UNKNOWN_ID


def list_raw_ports() -> list[RawPort]:
    """Enumerate serial devices known to the OS."""
    ports: list[RawPort] = []
    for entry in serial.tools.list_ports.comports():
        if not entry.device:
            continue
        bus_description = getattr(entry, "interface", None) or getattr(entry, "product", None) or ""
        ports.append(
            RawPort(
                name=entry.device,
                vid=_format_id(getattr(entry, "vid", None)),
                pid=_format_id(getattr(entry, "pid", None)),
                description=entry.description or "",
                bus_description=bus_description,
            )
        )
    return ports


class SerialConnection:
    def __init__(self, port: serial.Serial) -> None:
        self._port = port

    @property
    def name(self) -> str:
        return self._port.port or ""

    @property
    def is_open(self) -> bool:
        return bool(self._port.is_open)

    def read_available(self) -> bytes:
        try:
            waiting = self._port.in_waiting
            return self._port.read(waiting) if waiting else b""
        except (serial.SerialException, OSError) as exc:
            raise TransportIOError(f"Read from {self.name} failed: {exc}") from exc

    def write(self, data: bytes) -> None:
        try:
            self._port.write(data)
        except (serial.SerialException, OSError) as exc:
            raise TransportIOError(f"Write to {self.name} failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._port.close()
        except (serial.SerialException, OSError) as exc:
            raise TransportIOError(f"Close of {self.name} failed: {exc}") from exc


class SerialTransport:
    def open(self, port: str, settings: SerialSettings, *, baudrate: int) -> SerialConnection:
        ser = serial.Serial()
        try:
            ser.port = port
            ser.baudrate = baudrate
            ser.bytesize = _BYTESIZE_MAP[settings.data_bits]
            ser.parity = _PARITY_MAP[settings.parity]
            ser.stopbits = _STOPBITS_MAP[settings.stop_bits]
        except (KeyError, ValueError) as exc:
            raise TransportConfigError(
                f"Unsupported line settings for {port} ({baudrate} baud): {exc}"
            ) from exc

        ser.timeout = 0
        ser.write_timeout = WRITE_TIMEOUT_S
        # Many USB CDC devices send nothing until DTR/RTS are asserted.
        ser.dtr = True
        ser.rts = True

        try:
            ser.open()
        except ValueError as exc:
            raise TransportConfigError(
                f"The specified baud rate ({baudrate}) is not supported by {port}."
            ) from exc
        except serial.SerialException as exc:
            message = str(exc)
            hint = ""
            if "Permission" in message or "busy" in message or "Access is denied" in message:
                hint = "  Is this port already in use in another application?"
            raise TransportConnectError(
                f"SerialException occurred while attempting to open {port}.{hint}"
            ) from exc

        LOGGER.debug("Opened %s at %d baud", port, baudrate)
        return SerialConnection(ser)
