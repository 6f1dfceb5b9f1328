import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.api.routes import health, leads, notifications, products, sources
from app.config import settings
from app.core.database import DatabaseUnavailableError, dispose_database, init_database
from app.services.dependencies import build_crawl_pipeline, get_repositories, reset_dependencies
from pipelines.crawl.scheduler import CrawlScheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _build_scheduler() -> CrawlScheduler:
    return CrawlScheduler(lambda: build_crawl_pipeline(get_repositories()))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO),
            ],
            traces_sample_rate=0.1,
            environment=settings.environment,
        )
        logger.info("Sentry initialized")

    try:
        init_database()
    except DatabaseUnavailableError as exc:
        logger.critical("startup.database_unavailable", extra={"code": exc.code})
        raise

    scheduler: CrawlScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = _build_scheduler()
        scheduler.start()
        logger.info("Crawl scheduler started")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application")
    if scheduler is not None:
        await scheduler.stop()
    reset_dependencies()
    dispose_database()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Lead discovery for industrial fuel sales: crawl, infer, score and notify.",
    lifespan=lifespan,
    debug=settings.debug,
)

# Add CORS middleware
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Add security middleware
app.add_middleware(
    TrustedHostMiddleware, allowed_hosts=["*"] if settings.debug else ["localhost", "127.0.0.1"]
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"Response status: {response.status_code}")
    return response


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
app.include_router(sources.router, prefix="/api/sources", tags=["sources"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.environment,
    }


def run() -> None:
    """Serve the API with uvicorn using the configured bind address."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
