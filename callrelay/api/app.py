"""
FastAPI Application Module

Application factory wiring routes, middleware, error handlers and the
service container.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import Settings, get_settings
from ..container import ServiceContainer
from ..core.exceptions import CallRelayError, ErrorCode
from ..core.logging import configure_logging
from .routes import calls_router, webhooks_router

logger = structlog.get_logger(__name__)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    storage: str


# =============================================================================
# Exception Handlers
# =============================================================================


async def callrelay_exception_handler(request: Request, exc: CallRelayError):
    """Handle domain errors."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        code=exc.code.value,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400."""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "code": ErrorCode.VALIDATION_ERROR.value,
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "code": ErrorCode.INTERNAL_ERROR.value,
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        container: Prebuilt services; built from ``settings`` if omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    container = container or ServiceContainer.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting call relay",
            environment=settings.environment,
            host=settings.host,
            port=settings.port,
        )
        await container.start()

        yield

        logger.info("Shutting down call relay")
        await container.stop()

    app = FastAPI(
        title="Call Relay",
        description="Resend webhook relay and AI call scheduling service.",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CallRelayError, callrelay_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(webhooks_router)
    app.include_router(calls_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=__version__,
            storage="durable" if container.store.durable else "memory",
        )

    return app
