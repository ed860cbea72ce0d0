"""Interactive relay: keyboard to serial, serial to screen, optional session log."""

from __future__ import annotations

import codecs
import logging
import os
import re
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TextIO

from ssterm.core.errors import LogFileError, TransportIOError
from ssterm.core.model import AutoConnect, PortCandidate, SerialSettings
from ssterm.transports.base import Connection

EXIT_KEY = b"\x18"  # CTRL-X
NEWLINES = {"cr": "\r", "lf": "\n", "crlf": "\r\n"}
MAX_CUSTOM_NEWLINE = 255
LOG_BUFFER_SIZE = 102400
LOG_IDLE_FLUSH_S = 2.0
LOG_MAX_FLUSH_S = 10.0
STATUS_SETTLE_S = 0.1
IDLE_SLEEP_S = 0.001
_STATUS_SEQUENCE_RE = re.compile(r"\x1b\][02];.*?\x1b\\")
LOGGER = logging.getLogger(__name__)

# Windows console scan codes (after a 0x00/0xE0 prefix) -> VT sequences.
_WINDOWS_SPECIAL_KEYS = {
    "H": "\x1b[A",
    "P": "\x1b[B",
    "M": "\x1b[C",
    "K": "\x1b[D",
    "G": "\x1b[H",
    "O": "\x1b[F",
    "R": "\x1b[2~",
    "S": "\x1b[3~",
    "I": "\x1b[5~",
    "Q": "\x1b[6~",
    ";": "\x1b[11~",
    "<": "\x1b[12~",
    "=": "\x1b[13~",
    ">": "\x1b[14~",
    "?": "\x1b[15~",
    "@": "\x1b[17~",
    "A": "\x1b[18~",
    "B": "\x1b[19~",
    "C": "\x1b[20~",
    "D": "\x1b[21~",
    "\x85": "\x1b[23~",
    "\x86": "\x1b[24~",
}


def parse_tx_newline(value: str) -> str:
    """Resolve ``CR``, ``LF``, ``CRLF`` or ``CUSTOM=<text>`` to the string sent for ENTER."""
    lowered = value.strip().lower()
    if lowered in NEWLINES:
        return NEWLINES[lowered]
    if lowered.startswith("custom="):
        custom = value.strip()[len("custom="):]
        if len(custom) <= MAX_CUSTOM_NEWLINE:
            return custom
    raise ValueError(
        f"Invalid newline mode <{value}> (CR | LF | CRLF | CUSTOM=text, text up to "
        f"{MAX_CUSTOM_NEWLINE} characters)"
    )


def describe_newline(newline: str) -> str:
    for name, sequence in NEWLINES.items():
        if sequence == newline:
            return name.upper()
    return f"CUSTOM={newline!r}"


def to_printable(data: bytes) -> str:
    """Render bytes with non-printable values shown as ``[XX]``."""
    return "".join(
        chr(byte) if 31 < byte < 128 or byte in (8, 9, 10, 13) else f"[{byte:02X}]"
        for byte in data
    )


@dataclass(frozen=True)
class TerminalOptions:
    encoding: str = "utf-8"
    tx_newline: str = "\r"
    local_echo: bool = False
    force_newline: bool = False
    strip_status: bool = False
    clear_screen: bool = True
    quiet: bool = False
    log_file: Path | None = None
    log_append: bool = False

    @property
    def raw(self) -> bool:
        return self.encoding == "raw"

    @property
    def codec(self) -> str:
        return "cp1252" if self.raw else self.encoding


class SessionLog:
    """Buffered session log, flushed when idle, periodically, or when large."""

    def __init__(
        self,
        path: Path,
        *,
        append: bool = False,
        encoding: str = "utf-8",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = path
        self.append = append
        self.encoding = encoding
        self._clock = clock
        self._buffer: list[str] = []
        self._size = 0
        self._last_write = clock()
        self._last_flush = clock()
        mode = "a" if append else "w"
        try:
            with path.open(mode, encoding=encoding, errors="replace") as handle:
                handle.write(f"\n----- LOGGING STARTED ({datetime.now():%Y-%m-%d %H:%M:%S}) -----\n")
        except OSError as exc:
            raise LogFileError(f"Error accessing log file '{path}': {exc}") from exc

    def write(self, text: str) -> None:
        if not text:
            return
        self._buffer.append(text)
        self._size += len(text)
        self._last_write = self._clock()
        if self._size >= LOG_BUFFER_SIZE:
            self.flush()

    def flush_if_due(self) -> None:
        now = self._clock()
        if now - self._last_write >= LOG_IDLE_FLUSH_S or now - self._last_flush >= LOG_MAX_FLUSH_S:
            self.flush()

    def flush(self) -> None:
        self._last_flush = self._clock()
        if not self._buffer:
            return
        data = "".join(self._buffer)
        self._buffer.clear()
        self._size = 0
        try:
            with self.path.open("a", encoding=self.encoding, errors="replace") as handle:
                handle.write(data)
        except OSError as exc:
            LOGGER.error("Error accessing log file '%s': %s", self.path, exc)


class Console:
    """Non-blocking keyboard reader; puts POSIX terminals in raw mode while active."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._saved_mode: list | None = None

    def __enter__(self) -> Console:
        if os.name != "nt" and self.stdin.isatty():
            import termios
            import tty

            fd = self.stdin.fileno()
            self._saved_mode = termios.tcgetattr(fd)
            # Raw mode so CTRL-C reaches the device instead of interrupting us.
            tty.setraw(fd)
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._saved_mode is not None:
            import termios

            termios.tcsetattr(self.stdin.fileno(), termios.TCSADRAIN, self._saved_mode)
            self._saved_mode = None

    def read_key(self) -> bytes | None:
        if os.name == "nt":
            import msvcrt

            if not msvcrt.kbhit():
                return None
            char = msvcrt.getwch()
            if char in ("\x00", "\xe0"):
                return _WINDOWS_SPECIAL_KEYS.get(msvcrt.getwch(), "").encode("ascii") or None
            return char.encode("utf-8")

        import select

        if not self.stdin.isatty():
            return None
        ready, _, _ = select.select([self.stdin], [], [], 0)
        if not ready:
            return None
        return os.read(self.stdin.fileno(), 64) or None

    def exit_requested(self) -> bool:
        key = self.read_key()
        return key is not None and EXIT_KEY in key

    def write(self, text: str, *, verbatim: bool = False) -> None:
        # Raw mode disables output post-processing, so our own newlines need a CR.
        if self._saved_mode is not None and not verbatim:
            text = text.replace("\r\n", "\n").replace("\n", "\r\n")
        self.stdout.write(text)
        self.stdout.flush()

    def set_title(self, title: str) -> None:
        self.write(f"\x1b]0;{title}\x07")

    def clear(self) -> None:
        self.write("\x1b[2J\x1b[H")


class Terminal:
    """Relays one connected session; also owns screen output and the session log."""

    def __init__(
        self,
        console: Console,
        options: TerminalOptions | None = None,
        *,
        log: SessionLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.console = console
        self.options = options or TerminalOptions()
        self.log = log
        self._sleep = sleep

    def output(self, text: str, *, force: bool = False, verbatim: bool = False) -> None:
        if self.options.quiet and not force:
            return
        self.console.write(text, verbatim=verbatim)
        if self.log is not None:
            self.log.write(text)

    def notice(self, text: str) -> None:
        self.output(f"\n<<< {text} >>>\n")

    def translate_key(self, key: bytes) -> bytes:
        if b"\r" not in key:
            return key
        newline = self.options.tx_newline.encode(self.options.codec, errors="replace")
        return key.replace(b"\r", newline)

    def render(self, data: bytes, decoder: codecs.IncrementalDecoder) -> str:
        text = to_printable(data) if self.options.raw else decoder.decode(data)
        if self.options.strip_status:
            text = _STATUS_SEQUENCE_RE.sub("", text)
        if self.options.force_newline:
            text = text.replace("\r", "\n")
        return text

    def relay(self, port: PortCandidate, connection: Connection) -> None:
        """Pump bytes until CTRL-X (returns) or a transport fault (raises)."""
        decoder = codecs.getincrementaldecoder(self.options.codec)("replace")
        while True:
            key = self.console.read_key()
            while key:
                if EXIT_KEY in key:
                    return
                outgoing = self.translate_key(key)
                connection.write(outgoing)
                if self.options.local_echo:
                    self.output(
                        outgoing.decode(self.options.codec, errors="replace"), force=True, verbatim=True
                    )
                key = self.console.read_key()

            data = connection.read_available()
            if data:
                if self.options.strip_status and b"\x1b" in data:
                    # Give split title sequences a chance to arrive whole.
                    self._sleep(STATUS_SETTLE_S)
                    data += connection.read_available()
                self.output(self.render(data, decoder), force=True, verbatim=True)
            else:
                self._sleep(IDLE_SLEEP_S)

            if self.log is not None:
                self.log.flush_if_due()

            if not connection.is_open:
                raise TransportIOError(f"{port.name} was closed unexpectedly")


def connection_banner(
    port: PortCandidate,
    settings: SerialSettings,
    options: TerminalOptions,
    *,
    version: str,
    auto_connect: AutoConnect,
) -> str:
    parity = {"N": "no", "E": "even", "O": "odd", "M": "mark", "S": "space"}[settings.parity]
    stop_bits = f"{settings.stop_bits:g}"
    plural = "" if settings.stop_bits == 1 else "s"
    encoding = "RAW" if options.raw else options.encoding.upper()
    auto = {AutoConnect.ONE: "on", AutoConnect.ANY: "any", AutoConnect.NONE: "off"}[auto_connect]
    circuitpython = " (CircuitPython-capable)" if port.is_circuitpython else ""
    lines = [
        f"<<< ssterm v{version} connected via {port.name} >>>",
        f"Settings  : {settings.baud_for(port)} baud, {parity} parity, {settings.data_bits} data bits, "
        f"{stop_bits} stop bit{plural}, {encoding} encoding, auto-connect {auto}, "
        f"echo {'on' if options.local_echo else 'off'}, tx newline {describe_newline(options.tx_newline)}",
        f"Device    : {port.board.make} {port.board.model}{circuitpython}",
    ]
    if options.log_file is not None:
        mode = "APPEND" if options.log_append else "OVERWRITE"
        lines.append(f"Logfile   : {options.log_file} (Mode = {mode})")
    lines.extend(["---", "", "Use CTRL-X to exit.", ""])
    return "\n".join(lines)
