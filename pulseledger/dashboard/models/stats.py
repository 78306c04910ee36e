"""Error body returned when a dashboard snapshot cannot be computed."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class SnapshotError(BaseModel):
    """Explicit failure state for the dashboard UI."""

    error: str = Field(..., description="Error type (FetchError, IncompleteSnapshotError, ...)")
    detail: str = Field(..., description="Human-readable error message")
    context: Optional[dict[str, Any]] = Field(None, description="Failed entity, rows retrieved, ...")
