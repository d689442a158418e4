"""Pydantic schemas for the telemetry HTTP API payloads."""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, RootModel


class TelemetryType(str, Enum):
    """Measurement kinds accepted by the telemetry API, in payload order."""

    temperature = "temperature"
    humidity = "humidity"
    pressure = "pressure"
    battery = "battery"
    tx_power = "tx_power"
    movement_counter = "movement_counter"
    measurement_sequence_number = "measurement_sequence_number"


class Measurement(BaseModel):
    """A single data point of one telemetry type."""

    mac_address: str = Field(..., description="Sensor MAC address, e.g. FE:26:88:7A:66:66.")
    timestamp: int = Field(..., description="Measurement time in epoch milliseconds.")
    value: float


class TelemetryData(BaseModel):
    """All data points of one telemetry type in a request."""

    telemetry_type: TelemetryType
    data: List[Measurement] = Field(default_factory=list)


class TelemetryPayload(RootModel[List[TelemetryData]]):
    """Request body for ``POST /telemetry``."""


class TelemetryAccepted(BaseModel):
    """Response payload after storing a telemetry request."""

    accepted: int = Field(..., ge=0, description="Number of data points stored.")
