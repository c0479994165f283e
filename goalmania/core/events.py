"""
Application lifecycle events
Handles startup and shutdown tasks
"""

from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from .database import init_db, close_db
from .cache import get_cache, RedisCache
from .logging import setup_logging
from .config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    Handles startup and shutdown events
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME}...")

    if settings.ENVIRONMENT != "test":
        await init_db()
        logger.info("Database initialized")

    cache = get_cache()
    if isinstance(cache, RedisCache):
        await cache.connect()
        logger.info("Cache connected")

    try:
        yield
    finally:
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await close_db()
        if isinstance(cache, RedisCache):
            await cache.disconnect()
        logger.info("Shutdown complete")
