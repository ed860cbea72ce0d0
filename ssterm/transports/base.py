"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from ssterm.core.model import SerialSettings


class Connection(Protocol):
    @property
    def is_open(self) -> bool:
        """Whether the underlying port is still open."""

    def read_available(self) -> bytes:
        """Return whatever bytes are waiting, possibly none, without blocking."""

    def write(self, data: bytes) -> None:
        """Write all of *data* to the port."""

    def close(self) -> None:
        """Close the port; safe to call more than once."""


class Transport(Protocol):
    def open(self, port: str, settings: SerialSettings, *, baudrate: int) -> Connection:
        """Open *port* with *settings* at *baudrate* and return the live connection."""
