from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import admin_router, router
from app.schemas import field_errors
from logging_config import configure_logging
from services.pipeline import build_default_pipeline


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    pipeline = build_default_pipeline()
    try:
        yield
    finally:
        pipeline.shutdown()
        build_default_pipeline.cache_clear()


async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, str] = {}
    for error in exc.errors():
        location = error.get("loc") or ("body",)
        name = str(location[-1]) if len(location) > 1 else "body"
        errors.setdefault(name, error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": field_errors(errors)},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Device Telemetry",
        description="Records device temperatures and serves the latest reading per device.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    app.include_router(admin_router)
    return app

app = create_app()
