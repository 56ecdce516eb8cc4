"""Pydantic response models for the HTTP surface."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Body of ``GET /healthz``."""

    status: str = "ok"
    version: str
    connected: bool
    generation: int


class ErrorResponse(BaseModel):
    """Error envelope for every non-2xx JSON response."""

    error: str
    detail: str
