"""HTTP route definitions for the service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import (
    DeadLetterView,
    DeviceTemperature,
    ErrorResponse,
    ReplayResponse,
    TelemetryRequest,
    field_errors,
)
from services.errors import PublishError, StoreUnavailableError, ValidationError
from services.pipeline import TelemetryPipeline, build_default_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter(prefix="/admin", tags=["admin"])


def get_pipeline() -> TelemetryPipeline:
    return build_default_pipeline()


@router.post(
    "/telemetry",
    status_code=status.HTTP_202_ACCEPTED,
    response_class=Response,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Record a device temperature reading.",
)
def record_telemetry(
    request: TelemetryRequest,
    pipeline: TelemetryPipeline = Depends(get_pipeline),
) -> Response:
    try:
        pipeline.commands.record(request.device_id, request.temperature, request.timestamp)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=field_errors(exc.errors),
        ) from exc
    except (StoreUnavailableError, PublishError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return Response(status_code=status.HTTP_202_ACCEPTED)


@router.get(
    "/devices/temperatures",
    response_model=list[DeviceTemperature],
    summary="Latest known temperature for every device.",
)
def latest_temperatures(
    pipeline: TelemetryPipeline = Depends(get_pipeline),
) -> list[DeviceTemperature]:
    try:
        return pipeline.queries.list_latest()
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


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
    return {"status": "ok", "detail": "See /health for service status."}


@admin_router.delete(
    "/data",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Clear observations, projections and dead letters (test/reset only).",
)
def reset_data(pipeline: TelemetryPipeline = Depends(get_pipeline)) -> Response:
    try:
        pipeline.reset()
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    logger.warning("All telemetry data cleared")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.post(
    "/replay",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ReplayResponse,
    summary="Republish every stored observation to rebuild projections.",
)
def replay_observations(pipeline: TelemetryPipeline = Depends(get_pipeline)) -> ReplayResponse:
    try:
        published = pipeline.replay()
    except (StoreUnavailableError, PublishError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ReplayResponse(published=published)


@admin_router.get(
    "/dead-letters",
    response_model=list[DeadLetterView],
    summary="Messages that exhausted their delivery retries.",
)
def list_dead_letters(pipeline: TelemetryPipeline = Depends(get_pipeline)) -> list[DeadLetterView]:
    try:
        letters = pipeline.dead_letters.list()
    except StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return [DeadLetterView(**letter.to_document()) for letter in letters]
