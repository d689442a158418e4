"""HTTP route definitions for the telemetry receiver."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from app.schemas import Measurement, TelemetryAccepted, TelemetryData, TelemetryType
from datastore.measurement_store import MeasurementStore, build_default_store

logger = logging.getLogger(__name__)

router = APIRouter()


def get_store() -> MeasurementStore:
    return build_default_store()


@router.post(
    "/telemetry",
    status_code=status.HTTP_201_CREATED,
    response_model=TelemetryAccepted,
    summary="Store measurements grouped by telemetry type.",
)
async def post_telemetry(
    payload: List[TelemetryData],
    store: MeasurementStore = Depends(get_store),
) -> TelemetryAccepted:
    accepted = store.add(payload)
    logger.info("Stored telemetry", extra={"record_count": accepted})
    return TelemetryAccepted(accepted=accepted)


@router.get(
    "/telemetry/{telemetry_type}",
    response_model=List[Measurement],
    summary="List stored data points of one telemetry type.",
)
async def get_telemetry(
    telemetry_type: TelemetryType,
    store: MeasurementStore = Depends(get_store),
) -> List[Measurement]:
    return store.get(telemetry_type)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
