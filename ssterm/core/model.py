"""Core data models used across catalog, filters, pipeline, and controller."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from ssterm.core.errors import TransportConfigError

UNKNOWN_ID = "----"
WILDCARD = "*"


def _normalize_id(value: str) -> str:
    """Upper-case a USB id; callers must already supply four hex digits without a ``0x`` prefix."""
    return value.strip().upper() if value else UNKNOWN_ID


@dataclass(frozen=True)
class BoardIdentity:
    vid: str = UNKNOWN_ID
    pid: str = UNKNOWN_ID
    make: str = ""
    model: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "vid", _normalize_id(self.vid))
        object.__setattr__(self, "pid", _normalize_id(self.pid))
        if not self.make:
            object.__setattr__(self, "make", f"VID:{self.vid}")
        if not self.model:
            object.__setattr__(self, "model", f"PID:{self.pid}")

    def __str__(self) -> str:
        return f"[{self.vid}:{self.pid}] {self.make} {self.model}"


@dataclass(frozen=True)
class VendorIdentity:
    vid: str
    make: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "vid", _normalize_id(self.vid))


@dataclass(frozen=True)
class RawPort:
    """A device record as produced by the OS-level enumerator."""

    name: str
    vid: str = UNKNOWN_ID
    pid: str = UNKNOWN_ID
    description: str = ""
    bus_description: str = ""


@dataclass(frozen=True)
class PortCandidate:
    name: str
    ordinal: int
    vid: str
    pid: str
    description: str
    bus_description: str
    board: BoardIdentity
    is_circuitpython: bool = False

    @property
    def display_description(self) -> str:
        if self.is_circuitpython:
            return f"{self.board.make} {self.board.model}"
        return self.description


@dataclass(frozen=True)
class PortList:
    available: tuple[PortCandidate, ...] = ()
    excluded: tuple[PortCandidate, ...] = ()

    def find(self, name: str) -> PortCandidate | None:
        for candidate in (*self.available, *self.excluded):
            if candidate.name == name:
                return candidate
        return None


class FilterKind(IntEnum):
    """Filter kinds, ordered the way rule lists are evaluated."""

    INCLUDE = 0
    EXCLUDE = 1
    BLOCK = 2


class MatchMode(str, Enum):
    STRICT = "strict"
    LOOSE = "loose"
    CIRCUITPYTHON = "circuitpython"


@dataclass(frozen=True)
class FilterRule:
    kind: FilterKind = FilterKind.EXCLUDE
    match: MatchMode = MatchMode.STRICT
    port: str = WILDCARD
    vid: str = WILDCARD
    pid: str = WILDCARD
    description: str = WILDCARD
    device: str = WILDCARD

    @property
    def is_noop(self) -> bool:
        if self.match is MatchMode.CIRCUITPYTHON:
            return False
        return all(
            value == WILDCARD
            for value in (self.port, self.vid, self.pid, self.description, self.device)
        )


class ConnectionState(str, Enum):
    SEARCHING = "searching"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TERMINATED = "terminated"


class AutoConnect(str, Enum):
    NONE = "none"
    ONE = "one"
    ANY = "any"


CIRCUITPYTHON_BAUD = 115200
GENERIC_BAUD = 9600

PARITIES = ("N", "E", "O", "M", "S")
DATA_BITS = (5, 6, 7, 8)
STOP_BITS = (1.0, 1.5, 2.0)


@dataclass(frozen=True)
class SerialSettings:
    """Line settings; ``baud=None`` picks a default per candidate."""

    baud: int | None = None
    parity: str = "N"
    data_bits: int = 8
    stop_bits: float = 1.0

    def __post_init__(self) -> None:
        if self.baud is not None and self.baud <= 0:
            raise TransportConfigError(f"The specified baud rate ({self.baud}) is not supported.")
        parity = self.parity.strip().upper()[:1]
        if parity not in PARITIES:
            raise TransportConfigError(f"Invalid parity specified <{self.parity}>")
        object.__setattr__(self, "parity", parity)
        if self.data_bits not in DATA_BITS:
            raise TransportConfigError(f"Invalid data bits specified <{self.data_bits}>")
        if float(self.stop_bits) not in STOP_BITS:
            raise TransportConfigError(f"Invalid stop bits specified <{self.stop_bits}>")
        object.__setattr__(self, "stop_bits", float(self.stop_bits))

    def baud_for(self, candidate: PortCandidate) -> int:
        if self.baud is not None:
            return self.baud
        return CIRCUITPYTHON_BAUD if candidate.is_circuitpython else GENERIC_BAUD


@dataclass(frozen=True)
class ConnectionEvent:
    """Notification emitted by the controller for UI/title updates."""

    state: ConnectionState
    port: PortCandidate | None = None
    message: str | None = None
