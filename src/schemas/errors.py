"""Error response schema shared by all endpoints."""
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Uniform error body produced by the central exception handlers."""

    error: str = Field(description="Human-readable message, safe to display")
    code: str = Field(description="Stable machine-readable error code")
