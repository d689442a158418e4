"""Line-oriented telemetry source."""

from __future__ import annotations

import logging
from typing import BinaryIO, Iterator, TextIO, Union

from models.errors import EndOfInput, ParseError, ParseFailure
from models.records import TelemetryRecord, parse_record

logger = logging.getLogger(__name__)

SourceEvent = Union[TelemetryRecord, ParseFailure]


def _decode(raw: Union[str, bytes]) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Invalid UTF-8 in telemetry line: {exc}", line=repr(raw)) from exc


class LineSource:
    """Reads one telemetry record per physical line of a stream.

    Binary streams are decoded line by line, so an undecodable line only
    costs that line.
    """

    def __init__(self, stream: Union[BinaryIO, TextIO]) -> None:
        self.stream = stream
        self.line_number = 0

    def read_next(self) -> TelemetryRecord:
        """Block until the next record is available.

        Raises ``EndOfInput`` once the stream is closed and ``ParseFailure``
        for a line that is not a valid record, including lines that are not
        valid UTF-8 when reading from a binary stream.
        """
        while True:
            raw = self.stream.readline()
            if not raw:
                raise EndOfInput("Input stream closed")
            self.line_number += 1
            try:
                line = _decode(raw)
                if not line.strip():
                    logger.debug("Skipping blank line", extra={"line_number": self.line_number})
                    continue
                return parse_record(line.rstrip("\r\n"))
            except ParseError as exc:
                raise ParseFailure(exc, line_number=self.line_number) from exc

    def events(self) -> Iterator[SourceEvent]:
        """Yield records and parse failures in input order until end of input."""
        while True:
            try:
                yield self.read_next()
            except ParseFailure as failure:
                yield failure
            except EndOfInput:
                return

    def __iter__(self) -> Iterator[SourceEvent]:
        return self.events()
