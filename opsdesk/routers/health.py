"""Health check endpoints."""
from fastapi import APIRouter
import logging

from ..core.config import settings
from ..core.database import health_check_db
from ..services.chat.presence import presence_hub

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "OpsDesk Chat API",
        "version": settings.app_version,
        "open_feeds": len(presence_hub.active_connections),
    }

@router.get("/db-health")
async def database_health():
    """Database connectivity check"""
    healthy = await health_check_db()
    if not healthy:
        logger.error("Database health check reported unhealthy")
    return {
        "status": "healthy" if healthy else "unhealthy",
        "database": "reachable" if healthy else "unreachable",
    }
