"""Stable public API for building tooling on top of ssterm.

This module is the supported integration surface for third-party callers
(GUI front-ends, test rigs, scripts). Avoid importing from internal modules
unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from ssterm.core.boards import BoardCatalog, UpdateResult, apply_update
from ssterm.core.config import load_config
from ssterm.core.controller import ConnectionController, EventHandler
from ssterm.core.errors import (
    CatalogUpdateError,
    DocumentError,
    LogFileError,
    SessionTerminated,
    SstermError,
    TransportConfigError,
    TransportConnectError,
    TransportError,
    TransportIOError,
)
from ssterm.core.filters import FilterSet
from ssterm.core.model import (
    AutoConnect,
    BoardIdentity,
    ConnectionEvent,
    ConnectionState,
    FilterKind,
    FilterRule,
    MatchMode,
    PortCandidate,
    PortList,
    RawPort,
    SerialSettings,
)
from ssterm.core.ports import Enumerator, scan_ports
from ssterm.transports.base import Connection, Transport
from ssterm.transports.serial_port import SerialTransport, list_raw_ports

__all__ = [
    "SstermError",
    "DocumentError",
    "CatalogUpdateError",
    "LogFileError",
    "SessionTerminated",
    "TransportError",
    "TransportConnectError",
    "TransportConfigError",
    "TransportIOError",
    "AutoConnect",
    "BoardCatalog",
    "BoardIdentity",
    "UpdateResult",
    "apply_update",
    "Connection",
    "ConnectionController",
    "ConnectionEvent",
    "ConnectionState",
    "FilterKind",
    "FilterRule",
    "FilterSet",
    "MatchMode",
    "PortCandidate",
    "PortList",
    "RawPort",
    "SerialSettings",
    "SerialTransport",
    "Transport",
    "Client",
]


class Client:
    """Public client wrapping catalog/filter loading, port scanning and sessions.

    A `Client` loads the board catalog and filter rules once; each call to
    `list_ports` re-enumerates the OS ports against them. Pass a custom
    *transport* or *enumerate_ports* to drive ssterm without real hardware.
    """

    def __init__(
        self,
        *,
        boards: Sequence[Path] = (),
        filters: Sequence[Path] = (),
        transport: Transport | None = None,
        enumerate_ports: Enumerator | None = None,
    ) -> None:
        config = load_config(boards=boards, filters=filters)
        self._catalog = config.catalog
        self._filters = config.filters
        self._warnings = config.warnings
        self._transport = transport or SerialTransport()
        self._enumerate_ports = enumerate_ports or list_raw_ports

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._warnings

    @property
    def catalog(self) -> BoardCatalog:
        return self._catalog

    @property
    def filters(self) -> FilterSet:
        return self._filters

    def list_ports(self) -> PortList:
        return scan_ports(self._enumerate_ports, self._catalog, self._filters)

    def match_board(self, vid: str, pid: str) -> BoardIdentity:
        return self._catalog.match(vid, pid)

    def controller(
        self,
        *,
        settings: SerialSettings | None = None,
        auto_connect: AutoConnect = AutoConnect.ONE,
        port_name: str | None = None,
        on_event: EventHandler | None = None,
    ) -> ConnectionController:
        return ConnectionController(
            catalog=self._catalog,
            filters=self._filters,
            transport=self._transport,
            enumerate_ports=self._enumerate_ports,
            settings=settings,
            auto_connect=auto_connect,
            port_name=port_name,
            on_event=on_event,
        )
