"""
FastAPI application factory.

* Builds the Lifecycle Engine around the injected session factory.
* Registers routes for riders, drivers, shared ride views and admins.
* Starts / stops the consistency auditor via lifespan events.
* Maps the engine's error taxonomy to JSON ``{"error": ...}`` responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridebroker.api.middleware import limiter
from ridebroker.api.routes import admin, drivers, rides, users
from ridebroker.api.schemas import ErrorResponse
from ridebroker.config import settings
from ridebroker.domain.errors import LifecycleError
from ridebroker.infrastructure.database import get_session_factory
from ridebroker.services.lifecycle import LifecycleEngine
from ridebroker.workers import auditor as _auditor

logger = logging.getLogger(__name__)

# Documented failure shape for every router
ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 429, 500)
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the consistency auditor on startup; stop on shutdown."""
    if settings.audit_enabled:
        await _auditor.start_audit_loop(app.state.session_factory)
    yield
    if settings.audit_enabled:
        await _auditor.stop_audit_loop()


async def _lifecycle_error_handler(request: Request, exc: LifecycleError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    if all(error["loc"][0] == "path" for error in exc.errors()):
        # No record can carry an id that fails path validation.
        return JSONResponse(status_code=404, content={"error": "Not found."})
    return JSONResponse(status_code=400, content={"error": "Invalid request body."})


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal error."})


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    engine: LifecycleEngine | None = None,
) -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="Ride Broker API",
        description=(
            "Brokers trips between riders and drivers: booking intake, "
            "first-committer-wins acceptance, ride progression, payment "
            "settlement and rating, all coordinated through conditional "
            "writes against the shared store."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    sessions = session_factory or get_session_factory()
    app.state.session_factory = sessions
    app.state.engine = engine or LifecycleEngine(sessions)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error taxonomy
    app.add_exception_handler(LifecycleError, _lifecycle_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    # Routers
    app.include_router(users.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(drivers.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(rides.router, prefix="/api/v1", responses=ERROR_RESPONSES)
    app.include_router(admin.router, prefix="/api/v1", responses=ERROR_RESPONSES)

    return app
