"""
Health Router.

Public, unauthenticated endpoints for uptime checks.

Endpoints Provided:
- `/healthcheck`: A lightweight check that the service is running.
- `/healthcheck/detailed`: Also verifies the database connection and reports
  the configured media storage backend, returning a "degraded" status rather
  than an error when a component is down.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.dependencies import get_db, get_media_storage
from api.responses import respond
from core.database import Database, get_database_info
from core.logging_config import get_logger
from providers.media_provider import MediaStorage

logger = get_logger(__name__)

health_router = APIRouter(prefix="/healthcheck", tags=["Health"])

SERVICE_NAME = "VideoTube API"
VERSION = "1.0.0"


@health_router.get("")
async def health_check():
    """Basic health check endpoint (no authentication required)"""
    logger.debug("Health check requested")
    return respond(
        {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "service": SERVICE_NAME,
        },
        "OK",
    )


@health_router.get("/detailed")
async def detailed_health_check(
    db: Database = Depends(get_db), storage: MediaStorage = Depends(get_media_storage)
):
    """Health check with component status"""
    logger.info("Detailed health check requested")

    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": SERVICE_NAME,
        "components": {},
    }

    db_info = await get_database_info(db)
    health_status["components"]["database"] = {
        "status": "healthy" if db_info["connection_healthy"] else "unhealthy",
        "info": db_info,
    }
    if not db_info["connection_healthy"]:
        health_status["status"] = "degraded"

    health_status["components"]["storage"] = {"backend": storage.source_name}

    return respond(health_status, "OK")
