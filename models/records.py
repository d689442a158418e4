"""Domain models shared across services."""

from __future__ import annotations

from typing import Sequence, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from models.errors import InvalidMacAddress, ParseError

MAC_ADDRESS_LENGTH = 6


class TelemetryRecord(BaseModel):
    """A single reading broadcast by a Ruuvi environmental sensor.

    Field names match the snake_case keys of the newline-delimited JSON input.
    Values are kept in the sensor's raw integer units.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    temperature_millicelsius: int
    humidity: int
    pressure: int
    battery_potential: int
    tx_power: int
    movement_counter: int
    measurement_sequence_number: int
    measurement_ts_ms: int
    mac_address: Tuple[int, ...]

    @property
    def mac_display(self) -> str:
        """Colon-separated hex MAC used by the sinks. Raises ``InvalidMacAddress``."""
        return format_mac_address(self.mac_address)


def parse_record(line: str) -> TelemetryRecord:
    """Decode one JSON line. Raises ``ParseError`` for invalid JSON or fields."""
    try:
        return TelemetryRecord.model_validate_json(line)
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ParseError(f"Invalid telemetry record: {reasons}", line=line) from exc


def serialize_record(record: TelemetryRecord) -> str:
    return record.model_dump_json()


def format_mac_address(mac_address: Sequence[int]) -> str:
    """Render MAC bytes as ``FE:26:88:7A:66:66``."""
    if len(mac_address) != MAC_ADDRESS_LENGTH:
        raise InvalidMacAddress(len(mac_address))
    return ":".join(f"{byte & 0xFF:02X}" for byte in mac_address)


def parse_mac_address(display: str) -> Tuple[int, ...]:
    parts = display.split(":")
    if len(parts) != MAC_ADDRESS_LENGTH:
        raise InvalidMacAddress(len(parts))
    try:
        return tuple(int(part, 16) for part in parts)
    except ValueError as exc:
        raise ValueError(f"Invalid MAC address: {display!r}") from exc
