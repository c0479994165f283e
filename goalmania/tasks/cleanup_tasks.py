"""Cleanup and maintenance tasks"""

from celery.utils.log import get_task_logger
from datetime import datetime, timedelta
from typing import Optional
import asyncio

from sqlalchemy import update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from goalmania.core.celery_app import celery_app
from goalmania.core.config import settings
from goalmania.core.database import get_db_context
from goalmania.models.order import OrderDetails, OrderDetailsStatus
from goalmania.utils.helpers import utcnow

logger = get_task_logger(__name__)


async def sweep_abandoned(
    db: AsyncSession,
    now: Optional[datetime] = None,
    ttl_hours: Optional[int] = None
) -> int:
    """
    Mark checkouts still pending after the TTL as abandoned

    Returns the number of checkouts swept.
    """
    ttl_hours = ttl_hours or settings.PENDING_INTENT_TTL_HOURS
    cutoff = (now or utcnow()) - timedelta(hours=ttl_hours)

    result = await db.execute(
        update(OrderDetails)
        .where(
            and_(
                OrderDetails.status == OrderDetailsStatus.PENDING,
                OrderDetails.created_at < cutoff
            )
        )
        .values(status=OrderDetailsStatus.ABANDONED, failure_reason=f"no payment within {ttl_hours}h")
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _sweep() -> int:
    async with get_db_context() as db:
        return await sweep_abandoned(db)


@celery_app.task(name="goalmania.tasks.cleanup_tasks.sweep_abandoned_intents")
def sweep_abandoned_intents():
    """Hourly sweep of payment intents that were never paid"""
    try:
        swept = asyncio.run(_sweep())
        logger.info(f"Marked {swept} pending checkouts as abandoned")
        return {"abandoned": swept}
    except Exception as e:
        logger.error(f"Error sweeping abandoned checkouts: {str(e)}")
        raise
