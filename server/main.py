"""
Content cache and analytics service.

Serves cached content metadata, counts views and copies, ranks trending
items and exposes the build-complete invalidation hook.
"""

from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.exceptions import SourceUnavailable
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import analytics, cache, content
from services.scheduler import register_trending_cleanup, shutdown_scheduler, start_scheduler

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting content service", content_source=settings.content_source)
    set_startup_time()

    # Start services
    if settings.content_source == "database":
        await container.database().startup()
    await container.cache().startup()

    # Daily trending bucket cleanup
    register_trending_cleanup(container.stats_service(), settings.trending_cleanup_cron)
    start_scheduler()

    if settings.cache_warm_on_startup:
        try:
            await container.content_cache().warm()
        except SourceUnavailable as e:
            logger.warning("Cache warm-up skipped", error=str(e))

    logger.info("Services started successfully")
    yield

    # Shutdown
    shutdown_scheduler()
    await container.cache().shutdown()
    if settings.content_source == "database":
        await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Content Cache Service",
    version="1.0.0",
    description="Read-through content cache with view tracking and trending",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error=f"{type(e).__name__}: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


@app.exception_handler(SourceUnavailable)
async def source_unavailable_handler(request: Request, exc: SourceUnavailable):
    logger.error("Content source unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "detail": "Content source unavailable"}
    )


# Exception middleware first so CORS wraps it
app.add_middleware(CatchAllExceptionsMiddleware)

logger.info("Configuring CORS middleware",
            origins_count=len(settings.cors_origins),
            origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(analytics.router)
app.include_router(content.router)
app.include_router(cache.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    health = await get_health_status(
        container.cache(),
        container.content_source(),
        container.settings()
    )
    return {
        **health,
        "service": "content-cache",
        "environment": "development" if settings.debug else "production",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting content service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
    )
