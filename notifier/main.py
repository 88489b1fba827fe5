"""
FastAPI app: admin API for the notification engine.

Lifespan initializes the database pool and builds the orchestrator into
app.state. Missing upstream or channel credentials leave the engine
unconfigured (routes answer 503) instead of failing startup.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from notifier.config import settings
from notifier.db.pool import db_pool
from notifier.features.notifications.api.router import router as notifications_router
from notifier.features.notifications.errors import ConfigurationError
from notifier.features.notifications.factory import build_orchestrator
from notifier.infrastructure.observability.logging import get_logger, setup_logging
from notifier.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    await db_pool.initialize()

    app.state.orchestrator = None
    try:
        app.state.orchestrator = build_orchestrator()
        logger.info("Notification engine ready")
    except ConfigurationError as e:
        logger.warning("Notification engine not configured", error=str(e))

    yield

    logger.info("Application shutting down")
    shutdown_errors = []

    if app.state.orchestrator is not None:
        try:
            await app.state.orchestrator.close()
        except Exception as e:
            logger.error("Error closing notification engine", error=str(e))
            shutdown_errors.append(f"Notifications: {e}")

    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Studio Notifier",
    description="Event detection and admin notification delivery for the studio",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(notifications_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
