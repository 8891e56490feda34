"""Global exception handlers — map router errors to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
import structlog

from provider_router.domain.exceptions import (
    DomainError,
    LocalProviderMissingError,
    ProvidersUnavailableError,
    SlotNotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain→HTTP exception mappings."""

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=422,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(SlotNotFoundError)
    async def handle_not_found(request: Request, exc: SlotNotFoundError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(LocalProviderMissingError)
    async def handle_local_missing(
        request: Request, exc: LocalProviderMissingError
    ) -> ORJSONResponse:
        logger.warning("force_local_http_rejected", message=exc.message)
        return ORJSONResponse(
            status_code=409,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(ProvidersUnavailableError)
    async def handle_unavailable(
        request: Request, exc: ProvidersUnavailableError
    ) -> ORJSONResponse:
        logger.error("providers_unavailable_http", message=exc.message)
        return ORJSONResponse(
            status_code=503,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(DomainError)
    async def handle_domain(request: Request, exc: DomainError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )
