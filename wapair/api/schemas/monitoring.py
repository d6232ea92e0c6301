"""Pydantic schemas for the health endpoint."""

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health.

    Attributes:
        status: Overall health status ("ok")
        timestamp: Current server time, ISO 8601
        sessions: Number of live sessions
    """

    status: str
    timestamp: str
    sessions: int

    model_config = ConfigDict(extra="forbid")
