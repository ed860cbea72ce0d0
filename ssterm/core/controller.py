"""Connection lifecycle: port selection, open/retry, locking, and self-blocking.

The controller is driven by a single-threaded loop. Each ``step()`` performs
at most one transition; the only blocking points are the fixed pauses after
a failed search, a failed open, or an interrupted session.

    SEARCHING -> CONNECTING -> CONNECTED -> DISCONNECTED -> SEARCHING
        any fatal condition (or user exit) -> TERMINATED
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ssterm.core.boards import BoardCatalog
from ssterm.core.errors import (
    EXIT_GENERAL,
    EXIT_UNSUPPORTED_SETTING,
    SessionTerminated,
    TransportConfigError,
    TransportConnectError,
    TransportError,
)
from ssterm.core.filters import FilterSet
from ssterm.core.model import (
    AutoConnect,
    ConnectionEvent,
    ConnectionState,
    PortCandidate,
    PortList,
    SerialSettings,
)
from ssterm.core.ports import Enumerator, scan_ports
from ssterm.transports.base import Connection, Transport

RETRY_INTERVAL_S = 1.0
INTERRUPT_PAUSE_S = 2.0
LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[ConnectionEvent], None]
Relay = Callable[[PortCandidate, Connection], None]


class ConnectionController:
    def __init__(
        self,
        *,
        catalog: BoardCatalog,
        filters: FilterSet,
        transport: Transport,
        enumerate_ports: Enumerator,
        settings: SerialSettings | None = None,
        auto_connect: AutoConnect = AutoConnect.ONE,
        port_name: str | None = None,
        on_event: EventHandler | None = None,
        sleep: Callable[[float], None] = time.sleep,
        retry_interval_s: float = RETRY_INTERVAL_S,
        interrupt_pause_s: float = INTERRUPT_PAUSE_S,
    ) -> None:
        self.catalog = catalog
        self.filters = filters
        self.transport = transport
        self.enumerate_ports = enumerate_ports
        self.settings = settings or SerialSettings()
        self.auto_connect = auto_connect
        self.pinned_port = port_name or None
        # A user-named port is held across failed opens the same way a
        # port locked after its first connection is.
        self.locked = bool(self.pinned_port) and auto_connect is AutoConnect.ONE
        self.state = ConnectionState.SEARCHING
        self.ports = PortList()
        self.target: PortCandidate | None = None
        self.active_port: PortCandidate | None = None
        self.connection: Connection | None = None
        self._on_event = on_event
        self._sleep = sleep
        self._retry_interval_s = retry_interval_s
        self._interrupt_pause_s = interrupt_pause_s

    @property
    def retrying(self) -> bool:
        return self.auto_connect is not AutoConnect.NONE

    def select_port(self, ports: PortList) -> PortCandidate | None:
        """Pick the pinned port, else the first CircuitPython board, else the first port."""
        if self.pinned_port:
            return ports.find(self.pinned_port)
        if not ports.available:
            return None
        if self.filters.prefers_circuitpython:
            for candidate in ports.available:
                if candidate.is_circuitpython:
                    return candidate
        return ports.available[0]

    def step(self) -> ConnectionState:
        if self.state is ConnectionState.SEARCHING:
            self._search()
        elif self.state is ConnectionState.CONNECTING:
            self._connect()
        elif self.state is ConnectionState.DISCONNECTED:
            self._recover()
        return self.state

    def report_fault(self, exc: Exception) -> None:
        """Handle a transport failure raised while the session was connected."""
        port = self.active_port
        name = port.name if port else "<unknown>"
        self._close()
        if not self.retrying:
            self._fail(f"{type(exc).__name__} occurred while attempting to read/write to/from {name}.")
        LOGGER.warning("Communications interrupted on %s: %s", name, exc)
        self._transition(ConnectionState.DISCONNECTED, port, "Communications Interrupted")

    def terminate(self, message: str | None = None) -> None:
        self._close()
        self._transition(ConnectionState.TERMINATED, self.active_port, message)

    def run(self, relay: Relay, should_exit: Callable[[], bool]) -> None:
        """Drive the lifecycle until the user exits or a fatal condition occurs.

        *relay* pumps bytes for a connected session and returns when the user
        asks to exit; it raises ``TransportError`` when the session faults.
        """
        self._emit(ConnectionEvent(self.state, None, self._searching_message()))
        while self.state is not ConnectionState.TERMINATED:
            if should_exit():
                self.terminate("Session terminated via CTRL-X")
                break
            self.step()
            if self.state is not ConnectionState.CONNECTED:
                continue
            port, connection = self.active_port, self.connection
            if port is None or connection is None:
                self._transition(ConnectionState.SEARCHING, port, self._searching_message())
                continue
            try:
                relay(port, connection)
            except TransportError as exc:
                self.report_fault(exc)
            else:
                self.terminate("Session terminated via CTRL-X")

    def _search(self) -> None:
        self.ports = scan_ports(self.enumerate_ports, self.catalog, self.filters)
        candidate = self.select_port(self.ports)
        if candidate is not None:
            self.target = candidate
            self._transition(ConnectionState.CONNECTING, candidate)
            return

        if not self.retrying:
            if self.pinned_port:
                self._fail(f"Invalid port specified <{self.pinned_port}>")
            else:
                self._fail("No serial ports detected.")
        self._sleep(self._retry_interval_s)

    def _connect(self) -> None:
        candidate = self.target
        if candidate is None:
            self._transition(ConnectionState.SEARCHING, None, self._searching_message())
            return
        baudrate = self.settings.baud_for(candidate)
        try:
            self.connection = self.transport.open(candidate.name, self.settings, baudrate=baudrate)
        except TransportConfigError as exc:
            self._fail(str(exc), exit_code=EXIT_UNSUPPORTED_SETTING)
        except TransportConnectError as exc:
            if not self.retrying:
                self._fail(str(exc))
            if self.filters.block_port(candidate.name):
                LOGGER.info("Blocking %s after failed open", candidate.name)
            if not self.locked:
                self.pinned_port = None
            self.target = None
            LOGGER.warning("Could not open %s: %s", candidate.name, exc)
            self._sleep(self._retry_interval_s)
            self._transition(ConnectionState.SEARCHING, candidate, self._searching_message())
            return

        self.active_port = candidate
        if self.auto_connect is AutoConnect.ONE:
            self.pinned_port = candidate.name
            self.locked = True
        self._transition(ConnectionState.CONNECTED, candidate)

    def _recover(self) -> None:
        self._sleep(self._interrupt_pause_s)
        if self.auto_connect is AutoConnect.ANY:
            self.pinned_port = None
        self.target = None
        self._transition(ConnectionState.SEARCHING, self.active_port, self._searching_message())

    def _searching_message(self) -> str:
        if self.auto_connect is AutoConnect.ANY and not self.pinned_port:
            return "Attempting to connect to any available port.  Use CTRL-X to cancel"
        if self.pinned_port:
            verb = "re-connect" if self.active_port is not None else "connect"
            return f"Attempting to {verb} to {self.pinned_port}.  Use CTRL-X to cancel"
        return "Attempting to connect to first available port.  Use CTRL-X to cancel"

    def _fail(self, message: str, *, exit_code: int = EXIT_GENERAL) -> None:
        self._close()
        self._transition(ConnectionState.TERMINATED, self.target, message)
        raise SessionTerminated(message, exit_code=exit_code)

    def _close(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.close()
        except TransportError as exc:
            LOGGER.debug("Ignoring error while closing port: %s", exc)
        self.connection = None

    def _transition(
        self,
        state: ConnectionState,
        port: PortCandidate | None,
        message: str | None = None,
    ) -> None:
        LOGGER.info("%s -> %s (%s)", self.state.value, state.value, port.name if port else "-")
        self.state = state
        self._emit(ConnectionEvent(state, port, message))

    def _emit(self, event: ConnectionEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)
