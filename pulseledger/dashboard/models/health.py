"""Health check models for dashboard API."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


class StoreHealth(BaseModel):
    """Record store health status model.

    Attributes:
        status: Connection status
        type: Store type (duckdb or postgresql)
        response_time_ms: Store response time in milliseconds (optional)
    """
    status: Literal["connected", "disconnected"]
    type: str
    response_time_ms: float | None = Field(None, description="Store response time in milliseconds")


class HealthResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Overall system status
        timestamp: Current timestamp
        version: Application version
        store: Record store health information
    """
    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Current UTC timestamp"
    )
    version: str = Field(default="1.0.0", description="Application version")
    store: StoreHealth
