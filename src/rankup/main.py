# src/rankup/main.py

"""Main FastAPI application for RankUp."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .api import party, signals, stats
from .db.session import engine
from .dependencies import close_clients
from .exceptions import (
    PreconditionError,
    RankUpError,
    ResourceNotFoundError,
    StatsUnavailableError,
)
from .middleware.logging import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown events."""
    yield
    # Shutdown: close provider/push HTTP clients, then database connections
    await close_clients()
    await engine.dispose()


app = FastAPI(title="RankUp API", lifespan=lifespan)

# Add middleware (order matters - first added = outermost)
app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Global Exception Handlers
# =============================================================================


def _error_response(status_code: int, exc: RankUpError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "detail": exc.message,
            "error_type": type(exc).__name__,
        },
    )


@app.exception_handler(ResourceNotFoundError)
async def resource_not_found_handler(
    request: Request, exc: ResourceNotFoundError
) -> JSONResponse:
    """Handle all resource not found errors -> 404."""
    logger.warning("Resource not found: %s", exc.message, extra=exc.details)
    return _error_response(404, exc)


@app.exception_handler(PreconditionError)
async def precondition_error_handler(
    request: Request, exc: PreconditionError
) -> JSONResponse:
    """Handle missing caller-side setup (e.g. no linked account) -> 412."""
    logger.info("Precondition failed: %s", exc.message, extra=exc.details)
    return _error_response(412, exc)


@app.exception_handler(StatsUnavailableError)
async def stats_unavailable_handler(
    request: Request, exc: StatsUnavailableError
) -> JSONResponse:
    """Provider down and nothing cached -> 503."""
    logger.warning("Stats unavailable: %s", exc.message, extra=exc.details)
    return _error_response(503, exc)


@app.exception_handler(RankUpError)
async def rankup_error_handler(request: Request, exc: RankUpError) -> JSONResponse:
    """Catch-all for any other RankUp errors -> 500."""
    logger.error("RankUp error: %s", exc.message, extra=exc.details, exc_info=True)
    return _error_response(500, exc)


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Catch-all for SQLAlchemy database errors."""
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal database error occurred"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal server error occurred"},
    )


# Include routers into the main application
app.include_router(stats.router)
app.include_router(signals.router)
app.include_router(party.router)


@app.get("/", tags=["Root"])
async def read_root() -> dict[str, str]:
    """Provides a welcome message."""
    return {"message": "Welcome to the RankUp API"}


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
