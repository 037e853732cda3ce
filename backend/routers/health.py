"""Health check endpoint."""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from backend.database import engine
from backend.config import get_settings
from backend.services.matchmaking_client import get_matchmaking_client
from backend.utils.lock_client import get_lock_client
from backend.version import APP_VERSION
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "detail": "Database connection failed"},
        )

    return {
        "status": "ok",
        "database": db_status,
        "locks": get_lock_client().backend,
    }


@router.get("/status")
async def service_status():
    """
    Version, environment and upstream status for display on the frontend.
    """
    settings = get_settings()
    matchmaking = get_matchmaking_client()

    return {
        "version": APP_VERSION,
        "environment": settings.environment,
        "matchmaking": {
            "configured": matchmaking.enabled,
            "healthy": await matchmaking.health_check() if matchmaking.enabled else False,
        },
    }
