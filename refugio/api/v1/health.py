"""Health check for load balancers: process is up, and can the local backend reach its tables."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from refugio.core.config import get_settings
from refugio.core.database import check_db_connected, get_db
from refugio.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(db: Annotated[Session, Depends(get_db)]) -> HealthResponse:
    settings = get_settings()
    connected = check_db_connected(db)
    # Managed deployments sign users in without the database; only local ones degrade.
    degraded = settings.AUTH_BACKEND == "local" and not connected
    return HealthResponse(
        status="degraded" if degraded else "ok",
        environment=settings.APP_ENV,
        auth_backend=settings.AUTH_BACKEND,
        database="connected" if connected else "disconnected",
    )
