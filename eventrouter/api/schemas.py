"""Response schemas for the health and readiness endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness of the event pipeline."""

    ready: bool
    informer_state: str
    cached_events: int
    queue_pending: int
    queue_in_flight: int


class ErrorResponse(BaseModel):
    error: str
    detail: str
