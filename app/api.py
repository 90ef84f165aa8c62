"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    DeviceSummary,
    DeviceView,
    IngestedMeasurement,
    MeasurementWrite,
)
from datastore.base import StoreError, StoreInvalidError, StoreUnavailableError
from services.ingestion import IngestionService, build_default_ingestor
from services.registry import DeviceNotFoundError, DeviceRegistry, build_default_registry
from services.resolver import QueryResolver, build_default_resolver
from settings import get_settings

router = APIRouter()


def get_registry() -> DeviceRegistry:
    return build_default_registry()


def get_resolver() -> QueryResolver:
    return build_default_resolver()


def get_ingestor() -> IngestionService:
    return build_default_ingestor()


@router.get(
    "/devices",
    response_model=list[DeviceSummary],
    summary="List the devices known from the sensor configuration.",
)
def list_devices(
    registry: DeviceRegistry = Depends(get_registry),
) -> list[DeviceSummary]:
    return [DeviceSummary.from_device(device) for device in registry]


@router.get(
    "/devices/{address}",
    response_model=DeviceView,
    summary="Fetch a device with its current measurement and recent history.",
)
def get_device(
    address: str,
    count: Optional[int] = Query(
        default=None,
        description="Number of recent measurements to return, newest first.",
    ),
    resolver: QueryResolver = Depends(get_resolver),
) -> DeviceView:
    lookback = count if count is not None else get_settings().default_count
    try:
        return resolver.resolve(address, lookback)
    except DeviceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreInvalidError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc


@router.post(
    "/measurements",
    response_model=IngestedMeasurement,
    status_code=status.HTTP_201_CREATED,
    summary="Record a single measurement for a known device.",
)
def add_measurement(
    payload: MeasurementWrite,
    ingestor: IngestionService = Depends(get_ingestor),
) -> IngestedMeasurement:
    try:
        device, measurement = ingestor.ingest(payload.address, payload.raw_value, payload.date)
    except DeviceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreInvalidError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    return IngestedMeasurement.from_measurement(
        measurement, device.calibration, address=device.address
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /devices for known sensors."}
