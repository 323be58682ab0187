# LeaveCore - Main Application
# FastAPI application factory and startup

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from leavecore import __version__
from leavecore.config import get_settings
from leavecore.database import check_connection
from leavecore.logging_config import configure_logging
from leavecore.services.errors import (
    LeaveCoreError,
    ValidationError,
    InvalidStateError,
    ConflictError,
    NotFoundError,
    AuthorizationError,
)


settings = get_settings()
logger = logging.getLogger("leavecore")

# Typed service errors -> HTTP status
ERROR_STATUS = {
    ValidationError: 422,
    InvalidStateError: 409,
    ConflictError: 409,
    NotFoundError: 404,
    AuthorizationError: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Runs on startup and shutdown.
    """
    # Startup
    configure_logging(settings)
    logger.info("Starting %s...", settings.app_name)

    # Verify database connection
    try:
        check_connection()
        logger.info("Database connection: OK")
    except Exception as e:
        logger.error("Database connection: FAILED - %s", e)
        if not settings.debug:
            raise

    yield

    # Shutdown
    logger.info("Shutting down %s...", settings.app_name)


async def leavecore_error_handler(request: Request, exc: LeaveCoreError) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    logger.info(
        "%s %s -> %s %s: %s",
        request.method, request.url.path, status_code, exc.kind, exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Replacement leave eligibility and credit engine",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_exception_handler(LeaveCoreError, leavecore_error_handler)

    # Include routers
    from leavecore.routes import leave, rules, training, audit
    app.include_router(leave.router)
    app.include_router(rules.router)
    app.include_router(training.router)
    app.include_router(audit.router)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint for monitoring."""
        try:
            check_connection()
            db_status = "healthy"
        except Exception as e:
            db_status = f"unhealthy: {e}"

        return {
            "status": "ok",
            "app": settings.app_name,
            "version": __version__,
            "database": db_status,
        }

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "leavecore.main:app",
        host="0.0.0.0",
        port=8001,
        reload=settings.debug,
    )
