"""Health check response."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness plus the state of the store the configured auth backend depends on."""

    status: Literal["ok", "degraded"] = Field(
        default="ok",
        description="degraded when the local backend cannot reach its database",
    )
    environment: str = Field(description="APP_ENV (dev or prod)")
    auth_backend: Literal["local", "managed"] = Field(description="Backend serving sign-in for this deployment")
    database: Literal["connected", "disconnected"] = Field(description="Result of SELECT 1 against DATABASE_URL")
