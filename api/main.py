"""
Ordino - FastAPI Application

Back-office API for a permit-expediting firm: proposals, projects,
billing, retainers, RFP discovery and the Beacon assistant.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import settings
from config.logging_config import setup_logging
from database.connection import close_db
from api.auth.router import router as auth_router
from api.middleware.error_handler import setup_error_handlers
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import setup_rate_limiting
from api.routes import (
    assistant,
    billing_schedules,
    calendar,
    clients,
    companies,
    dashboard,
    google,
    invoices,
    leads,
    notifications,
    payments,
    projects,
    proposals,
    retainers,
    rfi,
    rfp_discovery,
    rfps,
)
from workers.queue import close_redis_pool

logger = setup_logging(process="api")

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info("Starting Ordino API...")
    logger.info(f"Environment: {settings.api_env}")
    logger.info(f"LLM Provider: {settings.llm_provider.value}")
    if not settings.google_configured:
        logger.info("Google OAuth not configured; Gmail and Calendar are disabled")

    yield

    try:
        await close_redis_pool()
    except OSError as e:
        logger.warning(f"Could not close Redis pool: {e}")
    await close_db()
    logger.info("Shutting down Ordino API...")


app = FastAPI(
    title="Ordino API",
    description="Back office for construction permit expediting",
    version=API_VERSION,
    lifespan=lifespan
)

# Error handlers go on before middleware
setup_error_handlers(app)
setup_rate_limiting(app)
app.add_middleware(LoggingMiddleware)

# CORS last, so it wraps everything else
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# API Routes
# ============================================================================

app.include_router(auth_router, prefix="/api/v1")
for module in (
    companies, clients, leads, proposals, projects, invoices, retainers,
    billing_schedules, payments, rfps, rfp_discovery, rfi, assistant, google,
    calendar, notifications, dashboard,
):
    app.include_router(module.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Ordino API",
        "version": API_VERSION,
        "status": "running",
        "environment": settings.api_env,
        "llm_provider": settings.llm_provider.value,
        "model": settings.default_model,
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.api_env
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
