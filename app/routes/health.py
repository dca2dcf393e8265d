import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Stock Alert Inventory"}


@router.get("/api/health")
async def api_health(settings: Settings = Depends(get_settings)):
    """Which optional integrations are configured"""
    return {
        "ok": True,
        "worker": bool(settings.WORKER_INGRESS_URL),
        "db": bool(settings.DATABASE_URL),
    }


@router.get("/health/db")
async def database_health():
    """Check database connectivity"""
    try:
        from app.database import async_session

        async with async_session() as session:
            await session.execute(text("SELECT 1"))
            return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }
