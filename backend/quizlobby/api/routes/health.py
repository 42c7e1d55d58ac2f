"""
Health check endpoints.

Reports database connectivity and live channel status.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from quizlobby.api.deps import get_broadcaster
from quizlobby.config import get_settings
from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.core.clock import utcnow
from quizlobby.database import get_db

router = APIRouter()
settings = get_settings()


def _database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "connected"
    except Exception as e:
        return f"error: {str(e)}"


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
) -> dict:
    """
    Basic health check endpoint.

    Example response:
        {
            "status": "healthy",
            "app_name": "QuizLobby",
            "version": "0.1.0",
            "timestamp": "2026-10-18T12:00:00Z",
            "database": "connected",
            "live_channels": 3
        }
    """
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": utcnow().isoformat() + "Z",
        "database": _database_status(db),
        "live_channels": broadcaster.channel_count(),
    }


@router.get("/health/ready")
async def readiness_check(
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
) -> dict:
    """
    Readiness check: the database answers and the broadcaster is open.
    """
    database = _database_status(db)
    checks = {
        "database": "ok" if database == "connected" else f"failed: {database}",
        "broadcaster": "closed" if broadcaster.closed else "ok",
    }
    return {
        "ready": all(value == "ok" for value in checks.values()),
        "checks": checks,
    }
