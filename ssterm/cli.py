"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

import typer

from ssterm import __version__
from ssterm.core.boards import apply_update, save_catalog
from ssterm.core.config import LoadedConfig, installed_catalog_path, load_base_catalog, load_config
from ssterm.core.controller import ConnectionController, EventHandler
from ssterm.core.errors import (
    EXIT_UNSUPPORTED_SETTING,
    SessionTerminated,
    SstermError,
    TransportConfigError,
)
from ssterm.core.model import (
    AutoConnect,
    ConnectionEvent,
    ConnectionState,
    PortCandidate,
    SerialSettings,
)
from ssterm.core.ports import scan_ports
from ssterm.terminal import (
    Console,
    SessionLog,
    Terminal,
    TerminalOptions,
    connection_banner,
    parse_tx_newline,
)
from ssterm.transports.serial_port import SerialTransport, list_raw_ports

app = typer.Typer(help="Serial terminal with board identification and auto-reconnect")


class Encoding(str, Enum):
    UTF8 = "utf8"
    ASCII = "ascii"
    RAW = "raw"


class LogMode(str, Enum):
    OVERWRITE = "overwrite"
    APPEND = "append"


_CODECS = {Encoding.UTF8: "utf-8", Encoding.ASCII: "ascii", Encoding.RAW: "raw"}

BOARDS_OPTION = typer.Option(None, "--boards", help="Extra board catalog (JSON/YAML) merged on top")
FILTERS_OPTION = typer.Option(None, "--filters", help="Extra filter rules (JSON/YAML)")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics to stderr"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_config(boards: list[Path] | None, filters: list[Path] | None) -> LoadedConfig:
    config = load_config(boards=boards or (), filters=filters or ())
    for warning in config.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return config


def _normalize_port(name: str | None) -> str | None:
    if not name:
        return None
    if os.name == "nt" and name.isdigit():
        return f"COM{name}"
    return name


def _describe(port: PortCandidate) -> str:
    description = port.display_description
    bus = port.bus_description
    if bus and not description.startswith(bus):
        return f"{description} [{bus}]"
    return description


def _event_handler(
    terminal: Terminal,
    settings: SerialSettings,
    auto_connect: AutoConnect,
) -> EventHandler:
    console = terminal.console
    options = terminal.options

    def handle(event: ConnectionEvent) -> None:
        port = event.port
        if event.state is ConnectionState.CONNECTED and port is not None:
            console.set_title(f"{port.name}: {port.board.make} {port.board.model}")
            if options.clear_screen:
                console.clear()
            terminal.output(
                connection_banner(
                    port,
                    settings,
                    options,
                    version=__version__,
                    auto_connect=auto_connect,
                )
            )
        elif event.state is ConnectionState.DISCONNECTED:
            if port is not None:
                console.set_title(f"{port.name}: (disconnected)")
            terminal.notice(event.message or "Disconnected")
        elif event.state is ConnectionState.SEARCHING:
            console.set_title("ssterm: Searching...")
            if event.message:
                terminal.notice(event.message)

    return handle


@app.command("connect")
def connect(
    port: str | None = typer.Option(None, "--port", "-c", help="Port name, e.g. COM3 or /dev/ttyACM0"),
    baud: int | None = typer.Option(None, "--baud", "-b", help="Baud rate (default depends on board)"),
    parity: str = typer.Option("N", "--parity", "-p", help="N, E, O, M or S"),
    data_bits: int = typer.Option(8, "--databits", "-d", help="5, 6, 7 or 8"),
    stop_bits: float = typer.Option(1.0, "--stopbits", "-s", help="1, 1.5 or 2"),
    auto_connect: AutoConnect = typer.Option(
        AutoConnect.ONE,
        "--autoconnect",
        "-a",
        case_sensitive=False,
        help="none: fail fast; one: stick to the first port; any: reconnect to any port",
    ),
    encoding: Encoding = typer.Option(Encoding.UTF8, "--encoding", "-e", case_sensitive=False),
    tx_newline: str = typer.Option("CR", "--tx-newline", help="CR, LF, CRLF or CUSTOM=text"),
    echo: bool = typer.Option(False, "--echo", help="Echo typed characters locally"),
    force_newline: bool = typer.Option(False, "--forcenewline", help="Treat received CR as newline"),
    no_status: bool = typer.Option(False, "--nostatus", help="Strip title/status escape sequences"),
    no_clear: bool = typer.Option(False, "--noclear", help="Do not clear the screen on connect"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show data received from the port"),
    log: Path | None = typer.Option(None, "--log", "-l", help="Write the session to a log file"),
    log_mode: LogMode = typer.Option(LogMode.OVERWRITE, "--logmode", case_sensitive=False),
    boards: list[Path] | None = BOARDS_OPTION,
    filters: list[Path] | None = FILTERS_OPTION,
) -> None:
    """Open an interactive session on a serial port.

    Without --port the first CircuitPython board is preferred, then the first
    available port. CTRL-X exits.
    """
    try:
        newline = parse_tx_newline(tx_newline)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--tx-newline") from None

    try:
        settings = SerialSettings(baud=baud, parity=parity, data_bits=data_bits, stop_bits=stop_bits)
        options = TerminalOptions(
            encoding=_CODECS[encoding],
            tx_newline=newline,
            local_echo=echo,
            force_newline=force_newline,
            strip_status=no_status,
            clear_screen=not no_clear,
            quiet=quiet,
            log_file=log,
            log_append=log_mode is LogMode.APPEND,
        )
        config = _build_config(boards, filters)
        session_log = None
        if log is not None:
            session_log = SessionLog(log, append=options.log_append, encoding=options.codec)

        with Console() as console:
            terminal = Terminal(console, options, log=session_log)
            controller = ConnectionController(
                catalog=config.catalog,
                filters=config.filters,
                transport=SerialTransport(),
                enumerate_ports=list_raw_ports,
                settings=settings,
                auto_connect=auto_connect,
                port_name=_normalize_port(port),
                on_event=_event_handler(terminal, settings, auto_connect),
            )
            try:
                controller.run(terminal.relay, console.exit_requested)
                terminal.notice("ssterm session terminated")
            finally:
                if session_log is not None:
                    session_log.flush()
    except SessionTerminated as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=abs(exc.exit_code)) from None
    except TransportConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=abs(EXIT_UNSUPPORTED_SETTING)) from None
    except SstermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("list")
def list_ports(
    show_all: bool = typer.Option(False, "--all", help="Also show ports removed by filters"),
    boards: list[Path] | None = BOARDS_OPTION,
    filters: list[Path] | None = FILTERS_OPTION,
) -> None:
    """List serial ports with their identified boards."""
    try:
        config = _build_config(boards, filters)
        ports = scan_ports(list_raw_ports, config.catalog, config.filters)
        rows = [(p, "") for p in ports.available]
        if show_all:
            rows.extend((p, " (excluded)") for p in ports.excluded)
        if not rows:
            typer.echo("No serial ports detected.")
            return

        typer.echo(f"{'PORT':<16} {'VID':<5} {'PID':<5} DESCRIPTION")
        typer.echo("-" * 70)
        for candidate, suffix in rows:
            typer.echo(
                f"{candidate.name:<16} {candidate.vid:<5} {candidate.pid:<5} {_describe(candidate)}{suffix}"
            )
    except SstermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("version")
def show_version() -> None:
    """Show the program version and board catalog version."""
    warnings: list[str] = []
    catalog = load_base_catalog(warnings)
    for warning in warnings:
        typer.echo(f"Warning: {warning}", err=True)
    typer.echo(f"ssterm version {__version__}")
    typer.echo(f"  Installation Path : {Path(__file__).resolve().parent}")
    typer.echo(f"  Board Data File   : {catalog.version}")


@app.command("update-boards")
def update_boards(
    source: Path = typer.Argument(..., help="Replacement board catalog (JSON/YAML)"),
    version: str = typer.Option(..., "--version", help="Release tag of the replacement catalog"),
) -> None:
    """Install a newer board catalog into the user data directory."""
    try:
        warnings: list[str] = []
        catalog = load_base_catalog(warnings)
        typer.echo(f"  Installed Version: {catalog.version}")
        typer.echo(f"  Available Version: {version}")
        try:
            document = source.read_text(encoding="utf-8")
        except OSError as exc:
            typer.echo(f"Error: Could not read {source}: {exc}", err=True)
            raise typer.Exit(code=1) from None
        result = apply_update(catalog, version, document)
        if not result.applied:
            typer.echo(f"Error: {result.message}", err=True)
            raise typer.Exit(code=1)
        target = installed_catalog_path()
        save_catalog(result.catalog, target)
        typer.echo(f"Board catalog {result.catalog.version} installed to {target}")
    except SstermError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
