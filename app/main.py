"""
FastAPI application for the parish learning backend.

The lifespan builds every shared resource (database pool, token verifier,
delivery provider registry) and stores it on app.state.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.auth.verify import TokenVerifier
from app.config import get_settings
from app.db.pool import DatabasePoolManager
from app.features.communications import communications_router
from app.features.communications.providers import build_provider_registry
from app.features.engagement import engagement_router
from app.features.learning import learning_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import RequestContextMiddleware
from app.routes import health

settings = get_settings()

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.environment != "development")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    db_pool = DatabasePoolManager(settings)
    await db_pool.initialize()

    app.state.db_pool = db_pool
    app.state.provider_registry = build_provider_registry()
    if settings.AUTH_JWKS_URL:
        app.state.token_verifier = TokenVerifier(settings)
    else:
        logger.warning("AUTH_JWKS_URL not set; authenticated routes will return 500")

    logger.info(
        "All services initialized successfully",
        delivery_providers=app.state.provider_registry.names(),
    )

    try:
        yield
    finally:
        logger.info("Application shutting down")
        try:
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="Parish Learning Backend",
    description="Course progress, engagement reporting and parish message delivery",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(learning_router)
app.include_router(engagement_router)
app.include_router(communications_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
