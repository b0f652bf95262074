"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wahub.config import settings
from wahub.database import dispose_engine
from wahub.api.errors import register_exception_handlers
from wahub.api.middleware import RateLimitMiddleware
from wahub.api.routes import analytics, health, team, webhooks, whatsapp
import structlog

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "application_startup",
        env=settings.app_env,
        webhook_failure_mode=settings.webhook_failure_mode,
    )
    yield
    await dispose_engine()
    logger.info("application_shutdown")


# Create FastAPI app
app = FastAPI(
    title="WhatsApp Hub",
    description="WhatsApp gateway webhook ingestion and per-organization gateway access",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.rate_limit_enabled and not settings.is_testing:
    app.add_middleware(RateLimitMiddleware, redis_url=settings.redis_url)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(
    webhooks.router,
    prefix="/api/v1",
    tags=["Webhooks"],
)
app.include_router(
    whatsapp.router,
    prefix="/api/v1",
    tags=["WhatsApp"],
)
app.include_router(
    analytics.router,
    prefix="/api/v1",
    tags=["Analytics"],
)
app.include_router(
    team.router,
    prefix="/api/v1",
    tags=["Team"],
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "WhatsApp Hub",
        "version": "0.1.0",
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "wahub.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
