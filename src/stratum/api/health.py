"""Health check endpoint for Stratum API.

Reports service status and, when a database is configured, connectivity.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stratum import __version__
from stratum.api.deps import get_config, get_db
from stratum.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from stratum.config import Config

log = get_logger("api.health")

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    timestamp: datetime
    repository: str
    database: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    config: "Config" = Depends(get_config),
    db: "Engine | None" = Depends(get_db),
) -> HealthResponse:
    """Check system health.

    Overall status is 'healthy' unless the configured database is
    unreachable, in which case it is 'degraded'.
    """
    if db is None:
        db_status = "disabled"
    else:
        try:
            with db.connect() as conn:
                conn.execute(text("SELECT 1"))
            db_status = "ok"
        except SQLAlchemyError as e:
            log.warning("health_database_unreachable", error=str(e))
            db_status = "error"

    return HealthResponse(
        status="degraded" if db_status == "error" else "healthy",
        service="user-service",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        repository=config.repository,
        database=db_status,
    )
