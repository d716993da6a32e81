from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resupify.api.routes import router as api_router
from resupify.config import get_settings
from resupify.db.init import init_database
from resupify.errors import (
    ConflictError,
    NotFoundError,
    QuotaError,
    RateLimitError,
    ResupifyError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[ResupifyError], int]] = [
    (ValidationError, 400),
    (QuotaError, 402),
    (NotFoundError, 404),
    (ConflictError, 409),
    (RateLimitError, 429),
    (UpstreamError, 502),
]


def status_for(exc: ResupifyError) -> int:
    for error_cls, status in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status
    return 500


async def handle_resupify_error(request: Request, exc: ResupifyError) -> JSONResponse:
    status = status_for(exc)
    headers = {}
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if status >= 500:
        logger.warning("%s %s failed: %s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(exc.to_dict(), status_code=status, headers=headers)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ResupifyError, handle_resupify_error)

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "env": settings.app_env})

    app.include_router(api_router)
    return app
