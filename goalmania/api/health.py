"""Health check endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
import logging

from goalmania.core.cache import CacheBackend, get_cache
from goalmania.core.config import settings
from goalmania.core.database import get_db
from goalmania.utils.helpers import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache)
) -> Dict[str, Any]:
    """Database and cache status"""
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "components": {}
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {"status": "healthy"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["components"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"

    try:
        health_status["components"]["cache"] = {"status": "healthy", **(await cache.stats())}
    except Exception as e:
        logger.warning(f"Cache health check failed: {e}")
        health_status["components"]["cache"] = {"status": "unhealthy", "error": str(e)}
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    return health_status
