"""Main FastAPI application for the Pulse-Ledger dashboard.

This module sets up the FastAPI application with all routes, middleware,
and configuration for the dashboard API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pulseledger.dashboard.api.dependencies import get_store_adapter
from pulseledger.dashboard.api.middleware import setup_middleware
from pulseledger.dashboard.api.routes import health, stats, transactions
from pulseledger.infrastructure.logging_config import setup_logging
from pulseledger.infrastructure.settings import APP_VERSION, settings

# Configure structured logging
setup_logging(use_json=settings.json_logs, log_level=settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"{settings.app_name} Dashboard API starting up...")
    logger.info("API documentation available at /api/docs")
    logger.info(f"Logging level: {settings.log_level}")
    logger.info(f"JSON logs: {settings.json_logs}")
    yield
    logger.info(f"{settings.app_name} Dashboard API shutting down...")
    if get_store_adapter.cache_info().currsize:
        get_store_adapter().close()
        get_store_adapter.cache_clear()


app = FastAPI(
    title="Pulse-Ledger Dashboard API",
    description="Revenue and operations statistics for the hospital dashboard",
    version=APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# CORS configuration
# In production, replace with specific origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Process-Time", "X-Request-ID"],
)

setup_middleware(app)

app.include_router(health.router)
app.include_router(stats.router)
app.include_router(transactions.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Pulse-Ledger Dashboard API",
        "version": APP_VERSION,
        "docs": "/api/docs",
        "health": "/api/health",
        "stats": "/api/dashboard/stats"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pulseledger.dashboard.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
