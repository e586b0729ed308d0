# shopfloor/api/v1/endpoints/health.py

import logging

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    """Liveness and database reachability, no token required"""
    settings = request.app.state.settings
    database = request.app.state.database

    db_status = "unavailable"
    if database is not None and database.is_open:
        try:
            database.scalar_count("SELECT 1")
            db_status = "connected"
        except Exception:
            logger.exception("Health check query failed")

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "version": settings.VERSION,
        "database": db_status,
    }
