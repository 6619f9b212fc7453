"""Variable API - Main FastAPI Application."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from variable_api.api.routes import admin, onboarding
from variable_api.core.circuit_breaker import CircuitBreakerOpen, get_all_circuit_breakers
from variable_api.core.config import settings
from variable_api.core.exceptions import VariableException, sanitize_error
from variable_api.middleware.performance import RequestIDMiddleware, RequestTimingMiddleware


# Configure logging: JSON for production, text for dev
def _configure_logging() -> None:
    """Set up logging based on LOG_FORMAT / LOG_LEVEL.

    json: Structured JSON via python-json-logger.
    text: Human-readable format (for local development).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if settings.LOG_FORMAT == "json":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "variable-api"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> Any:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting Variable API (env=%s)", settings.APP_ENV)
    yield
    logger.info("Shutting down Variable API...")


app = FastAPI(
    title="Variable API",
    description="Tenant onboarding for Variable AI agents",
    version="1.0.0",
    lifespan=lifespan,
)

CORS_ORIGINS = settings.cors_origins_list
logger.info("CORS allowed origins: %s", CORS_ORIGINS)

# In Starlette, last-added = outermost, so add timing first, then ID.
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RequestIDMiddleware)

# CORS Configuration, added last so it is outermost and handles preflight first
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(onboarding.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


@app.get("/health", tags=["system"])
async def root_health_check() -> dict[str, Any]:
    """Liveness check with circuit breaker states."""
    return {
        "status": "healthy",
        "circuit_breakers": {
            name: breaker.snapshot() for name, breaker in get_all_circuit_breakers().items()
        },
    }


@app.get("/", tags=["system"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "Variable API",
        "version": "1.0.0",
        "description": "Tenant onboarding for Variable AI agents",
    }


@app.exception_handler(VariableException)
async def variable_exception_handler(request: Request, exc: VariableException) -> JSONResponse:
    """Render Variable exceptions with a consistent shape.

    Server errors get the sanitized message; client errors keep theirs.
    """
    request_id = _request_id(request)
    logger.warning(
        "Variable exception occurred",
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "request_id": request_id,
            "path": request.url.path,
        },
    )
    detail = sanitize_error(exc) if exc.status_code >= 500 else exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": exc.code, "request_id": request_id},
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_open_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Database circuit open: tell the client to retry shortly."""
    request_id = _request_id(request)
    logger.warning(
        "Circuit open for %s",
        exc.service_name,
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(
        status_code=503,
        content={
            "detail": sanitize_error(exc),
            "code": "SERVICE_UNAVAILABLE",
            "request_id": request_id,
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI request validation errors."""
    request_id = _request_id(request)
    logger.info(
        "Request validation error",
        extra={"request_id": request_id, "path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Request validation error",
            "code": "REQUEST_VALIDATION_ERROR",
            "request_id": request_id,
            "errors": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Validation errors without the raw ``ctx`` objects, which may not serialize."""
    return [
        {key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions globally.

    Returns a JSON response with CORS headers so the browser doesn't
    mask the real error as a CORS failure.
    """
    request_id = _request_id(request)
    logger.exception(
        "Unhandled exception occurred",
        exc_info=exc,
        extra={"request_id": request_id, "path": request.url.path},
    )

    origin = request.headers.get("origin", "")
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "An internal server error occurred",
            "code": "INTERNAL_ERROR",
            "request_id": request_id,
        },
    )
    if origin in CORS_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response
