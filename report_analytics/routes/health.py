"""
Health check endpoint for the analytics service.

The service runs in degraded mode when MongoDB is unreachable: the
process stays up, /health answers 200 with database="disconnected", and
the analytics routes answer a retryable 503 (trending patterns answer
an empty list) while no database handle is held. Load balancers key
liveness off the status code; alerting keys off the database field.
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from report_analytics.core import database as db_module
from report_analytics.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    Liveness of the process plus a live ping of the reports store.

    Never fails on a database error; a failed ping is logged and
    reported as "disconnected".
    """
    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        database=db_status,
        environment=settings.environment,
    )
