from typing import Optional

from fastapi import FastAPI
from contextlib import asynccontextmanager
from app.api.routes import router
from app.core.config import settings
from app.core.log import get_logger, setup_logging
from app.core.ratelimit import RateLimiter
from app.fetch.orchestrator import FallbackOrchestrator, build_default_orchestrator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Log configuration on startup, drop rate limit state on shutdown.
    """
    logger.info("Starting Source Fetcher with strategies: %s",
                ", ".join(app.state.orchestrator.strategy_names))
    if settings.ALLOW_INSECURE_TRANSPORT:
        logger.warning("Insecure transport strategy is enabled, TLS verification may be skipped")

    yield

    logger.info("Shutting down Source Fetcher...")
    app.state.rate_limiter.purge_expired()


def create_app(
    orchestrator: Optional[FallbackOrchestrator] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Source Fetcher",
        description="Fetch the source of a web page, falling back to a headless browser when needed",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.orchestrator = orchestrator or build_default_orchestrator(settings)
    app.state.rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )

    # Include API routes
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "service": "Source Fetcher",
            "version": "1.0.0",
            "endpoints": {
                "fetch": "POST /fetch",
                "batch": "POST /fetch/batch",
                "strategies": "GET /strategies",
                "health": "GET /health"
            }
        }

    return app


app = create_app()
