"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Type

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.exceptions import HTTPException as StarletteHTTPException

from mockprep.api.v1.api import api_router
from mockprep.core.config import settings
from mockprep.core.exceptions import (
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    InvalidStateError,
    MockPrepError,
    NotFoundError,
    UpstreamFailureError,
)
from mockprep.core.logging_config import setup_logging
from mockprep.middleware import RequestLoggingMiddleware

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)

# HTTP status for each domain error; subclasses resolve through the MRO
DOMAIN_ERROR_STATUS: Dict[Type[MockPrepError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    DomainValidationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    UpstreamFailureError: status.HTTP_502_BAD_GATEWAY,
}


def domain_error_status(exc: MockPrepError) -> int:
    for cls in type(exc).__mro__:
        if cls in DOMAIN_ERROR_STATUS:
            return DOMAIN_ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def init_sentry(
    dsn: str,
    traces_sample_rate: float,
    environment: str,
    release: str,
) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        dsn: Sentry DSN; empty or None disables error tracking
        traces_sample_rate: Fraction of transactions traced (0.0-1.0)
        environment: Deployment environment name
        release: Application version

    Returns:
        True if Sentry was initialized, False otherwise
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=traces_sample_rate,
        environment=environment,
        release=release,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
    )
    logger.info(
        f"Sentry initialized for environment '{environment}' "
        f"with {traces_sample_rate * 100:.0f}% trace sampling"
    )
    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    On startup initializes error tracking. The database engine is created at
    import time and needs no explicit shutdown.
    """
    init_sentry(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.ENV,
        release=settings.APP_VERSION,
    )
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENV})")

    yield

    logger.info("Application shutting down")


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "auth",
        "description": "Authentication endpoints for user registration and login",
    },
    {
        "name": "tests",
        "description": "Public test catalog",
    },
    {
        "name": "purchases",
        "description": "Checkout, payment verification and the payment gateway webhook",
    },
    {
        "name": "attempts",
        "description": "Attempt lifecycle, progress saving, submission and leaderboard",
    },
    {
        "name": "performance",
        "description": "Per-user performance summaries",
    },
    {
        "name": "admin",
        "description": "Catalog management and platform statistics (admin users only)",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**MockPrep API** - A backend service for timed mock exams.\n\n"
            "This API provides:\n"
            "* User registration and login\n"
            "* A catalog of purchasable mock tests\n"
            "* Checkout through a hosted payment gateway\n"
            "* Timed attempts with saved progress and automatic scoring\n"
            "* Leaderboards and performance summaries\n\n"
            "## Authentication\n\n"
            "Most endpoints require authentication using JWT Bearer tokens. "
            "Obtain tokens via the `/v1/auth/login` endpoint."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Configure Request Logging
    app.add_middleware(RequestLoggingMiddleware)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(MockPrepError)
    async def domain_exception_handler(request: Request, exc: MockPrepError):
        """
        Map domain errors raised by the services to HTTP responses.

        Only the user-facing message is returned; context is logged.
        """
        status_code = domain_error_status(exc)
        log_level = (
            logging.ERROR
            if isinstance(exc, UpstreamFailureError)
            else logging.WARNING
        )
        logger.log(
            log_level,
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc}",
            extra={
                "method": request.method,
                "path": str(request.url.path),
                "status_code": status_code,
            },
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handle HTTP exceptions raised by endpoints and dependencies.
        """
        if exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code} on {request.method} {request.url.path}: "
                f"{exc.detail}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        # Convert errors to serializable format
        errors = []
        for error in exc.errors():
            errors.append(
                {
                    "loc": list(error.get("loc", [])),
                    "msg": str(error.get("msg", "")),
                    "type": str(error.get("type", "")),
                }
            )

        logger.info(
            f"Validation error on {request.method} {request.url.path}: "
            f"{len(errors)} error(s)"
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id (UUID) for each exception to enable
        support teams to trace specific errors in logs. The error_id is
        included in the response body and logged with the full exception.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )

        # No-op when Sentry is not initialized
        sentry_sdk.capture_exception(exc, tags={"error_id": error_id})

        # Return error response with tracking ID (don't leak internal details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
