"""
Health probes.

/health reports the session database, oracle configuration and store
backend. /health/live and /health/ready are the container probes; readiness
fails while the SQLite store is unreachable.
"""

from fastapi import APIRouter, HTTPException, status

from assessment.core.config import settings
from assessment.persistence.database import check_database_health

router = APIRouter()

VERSION = "0.1.0"


def _oracle_status() -> dict:
    return {
        "provider": settings.oracle_provider,
        "configured": bool(settings.openai_api_key),
        "max_wait_seconds": settings.oracle_max_wait_seconds,
    }


@router.get("/health")
async def health_check():
    """Component status; ``unhealthy`` if the database probe fails."""
    db_health = await check_database_health()
    healthy = db_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": VERSION,
        "components": {
            "database": db_health,
            "oracle": _oracle_status(),
            "session_store": settings.session_store_backend,
            "analytics": settings.analytics_enabled,
        },
    }


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """503 until the session database answers."""
    if settings.session_store_backend == "sqlite":
        db_health = await check_database_health()
        if db_health["status"] != "healthy":
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Session database not ready",
            )
    return {"status": "ready"}
