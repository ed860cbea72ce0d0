"""Domain-specific errors for ssterm."""

EXIT_GENERAL = -1
EXIT_UNSUPPORTED_SETTING = -2


class SstermError(Exception):
    """Base error for ssterm."""


class DocumentError(SstermError):
    """Raised when a catalog or filter document cannot be read, parsed, or validated."""


class CatalogUpdateError(SstermError):
    """Raised when an updated board catalog cannot be installed."""


class TransportError(SstermError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when a serial port cannot be opened."""


class TransportConfigError(TransportError):
    """Raised when a line setting is not supported by the port or driver."""


class TransportIOError(TransportError):
    """Raised on read/write failures or an unexpectedly closed port."""


class SessionTerminated(SstermError):
    """Raised when the connection lifecycle ends on a fatal condition."""

    def __init__(self, message: str, *, exit_code: int = EXIT_GENERAL) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class LogFileError(SstermError):
    """Raised when the session log file cannot be opened or written."""
