"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- API routes
- Middleware (logging, CORS)
- Logging level
- Database schema bootstrap on startup
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from link_tracker.api import endpoints
from link_tracker.core.setting import settings
from link_tracker.db.session import dispose_engine, init_db
from link_tracker.middleware.logging import add_logging_middleware

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="IP Tracker",
    description="Self-hosted tracking links with visitor analytics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint for health checks.

    Returns:
        Simple JSON response indicating service is running
    """
    return {
        "message": "IP Tracker",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.
    """
    return {"status": "healthy"}


app.include_router(endpoints.router, tags=["Tracker"])


@app.on_event("startup")
async def startup_event():
    """Create missing tables on startup."""
    await init_db()
    logger.info(f"IP Tracker started ({settings.ENV_SETTING.value})")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    await dispose_engine()
