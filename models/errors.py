"""Exception types shared by the source, sinks and forwarder."""

from __future__ import annotations

from typing import Optional


class ForwarderError(Exception):
    """Base class for every error raised by the forwarder."""


class ParseError(ForwarderError, ValueError):
    """An input line could not be decoded into a telemetry record."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(message)
        self.line = line


class SourceError(ForwarderError):
    """Conditions reported by a telemetry source."""


class ParseFailure(SourceError):
    """A line was present but invalid. The source keeps producing after this."""

    def __init__(self, error: ParseError, line_number: Optional[int] = None) -> None:
        super().__init__(str(error))
        self.error = error
        self.line_number = line_number

    @property
    def line(self) -> str:
        return self.error.line


class EndOfInput(SourceError):
    """The input stream was closed."""


class InvalidTableName(ForwarderError, ValueError):
    def __init__(self, table_name: str) -> None:
        super().__init__(
            f"Invalid table name: {table_name!r}. Table name must start with a letter "
            "or underscore and contain only alphanumeric characters and underscores."
        )
        self.table_name = table_name


class InvalidMacAddress(ForwarderError, ValueError):
    def __init__(self, length: int) -> None:
        super().__init__(f"Invalid MAC address length: {length}, expected 6")
        self.length = length


class SinkError(ForwarderError):
    """A sink failed to perform its side effect."""

    def __init__(self, message: str, sink: str) -> None:
        super().__init__(message)
        self.sink = sink


class ServerError(SinkError):
    """The remote API answered with a 5xx status."""

    def __init__(self, status_code: int, reason: str, sink: str = "http") -> None:
        super().__init__(f"Server error: {status_code} {reason}".rstrip(), sink=sink)
        self.status_code = status_code
