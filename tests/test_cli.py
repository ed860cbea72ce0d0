from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ssterm import __version__, cli
from ssterm.core.model import RawPort

runner = CliRunner()

CPX = RawPort(
    name="COM5",
    vid="239A",
    pid="8019",
    description="USB Serial Device (COM5)",
    bus_description="CircuitPython CDC control",
)
UNO = RawPort(name="COM1", vid="2341", pid="0043", description="Arduino Uno (COM1)")


class FakeConsole:
    """Stands in for the keyboard: idles for a few polls, then presses CTRL-X."""

    def __init__(self) -> None:
        self.keys: list[bytes | None] = [None, None, None, b"\x18"]

    def __enter__(self) -> FakeConsole:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def read_key(self) -> bytes | None:
        return self.keys.pop(0) if self.keys else b"\x18"

    def exit_requested(self) -> bool:
        return self.read_key() == b"\x18"

    def write(self, text: str, *, verbatim: bool = False) -> None:
        sys.stdout.write(text)

    def set_title(self, title: str) -> None:
        pass

    def clear(self) -> None:
        pass


class FakeConnection:
    def __init__(self) -> None:
        self.is_open = True
        self.pending = [b"Adafruit CircuitPython 9.1.0\r\n>>> "]

    def read_available(self) -> bytes:
        return self.pending.pop(0) if self.pending else b""

    def write(self, data: bytes) -> None:
        pass

    def close(self) -> None:
        self.is_open = False


class FakeTransport:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    def open(self, port, settings, *, baudrate):
        self.calls.append((port, baudrate))
        return FakeConnection()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return tmp_path


def _ports(monkeypatch: pytest.MonkeyPatch, *ports: RawPort) -> None:
    monkeypatch.setattr(cli, "list_raw_ports", lambda: list(ports))


def test_list_shows_identified_boards(monkeypatch: pytest.MonkeyPatch) -> None:
    _ports(monkeypatch, CPX, UNO)

    result = runner.invoke(cli.app, ["list"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].split() == ["PORT", "VID", "PID", "DESCRIPTION"]
    assert lines[2].startswith("COM1")
    assert "Adafruit Circuit Playground Express [CircuitPython CDC control]" in lines[3]


def test_list_all_marks_excluded_ports(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _ports(monkeypatch, CPX, UNO)
    filters = tmp_path / "filters.json"
    filters.write_text(json.dumps([{"type": "exclude", "vid": "2341"}]), encoding="utf-8")

    plain = runner.invoke(cli.app, ["list", "--filters", str(filters)])
    everything = runner.invoke(cli.app, ["list", "--all", "--filters", str(filters)])

    assert "COM1" not in plain.output
    assert "(excluded)" in everything.output


def test_list_warns_about_bad_filter_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _ports(monkeypatch)
    bad = tmp_path / "filters.json"
    bad.write_text("[{", encoding="utf-8")

    result = runner.invoke(cli.app, ["list", "--filters", str(bad)])

    assert result.exit_code == 0
    assert "Warning: Ignoring filters" in result.output
    assert "No serial ports detected." in result.output


def test_version_reports_board_data() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert f"ssterm version {__version__}" in result.output
    assert "Board Data File   : 2024.10.01" in result.output


def test_update_boards_installs_newer_catalog(tmp_path: Path) -> None:
    source = tmp_path / "new.json"
    source.write_text(
        json.dumps({"version": "x", "boards": [{"vid": "1209", "pid": "0001", "model": "Test"}]}),
        encoding="utf-8",
    )

    result = runner.invoke(cli.app, ["update-boards", str(source), "--version", "2030.01.01"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "data" / "ssterm" / "boards.json").is_file()

    again = runner.invoke(cli.app, ["update-boards", str(source), "--version", "2030.01.01"])
    assert again.exit_code == 1
    assert "already up to date" in again.output

    version = runner.invoke(cli.app, ["version"])
    assert "Board Data File   : 2030.01.01" in version.output


def test_connect_without_ports_and_no_retry_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    _ports(monkeypatch)

    result = runner.invoke(cli.app, ["connect", "--autoconnect", "none"])

    assert result.exit_code == 1
    assert "Error: No serial ports detected." in result.output


def test_connect_rejects_bad_line_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    _ports(monkeypatch, UNO)
    result = runner.invoke(cli.app, ["connect", "--parity", "X"])
    assert result.exit_code == 2
    assert "Invalid parity" in result.output


def test_connect_rejects_bad_tx_newline() -> None:
    result = runner.invoke(cli.app, ["connect", "--tx-newline", "NUL"])
    assert result.exit_code == 2


def test_connect_session_until_ctrl_x(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _ports(monkeypatch, UNO, CPX)
    transport = FakeTransport()
    monkeypatch.setattr(cli, "SerialTransport", lambda: transport)
    monkeypatch.setattr(cli, "Console", FakeConsole)
    log = tmp_path / "session.log"

    result = runner.invoke(cli.app, ["connect", "--log", str(log)])

    assert result.exit_code == 0, result.output
    assert transport.calls == [("COM5", 115200)]
    assert "connected via COM5" in result.output
    assert "Adafruit CircuitPython 9.1.0" in result.output
    assert "ssterm session terminated" in result.output
    assert "Adafruit CircuitPython 9.1.0" in log.read_text(encoding="utf-8")
