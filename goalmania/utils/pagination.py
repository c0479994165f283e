"""
Offset pagination for order listings
"""

from typing import Any, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from goalmania.core.config import settings


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    size: int = settings.DEFAULT_PAGE_SIZE
) -> Dict[str, Any]:
    """
    Run ``query`` for one page and count the full result set.

    ``size`` is clamped to MAX_PAGE_SIZE.
    """
    page = max(page, 1)
    size = min(max(size, 1), settings.MAX_PAGE_SIZE)

    total = await db.scalar(
        select(func.count()).select_from(query.order_by(None).subquery())
    ) or 0

    result = await db.execute(query.offset((page - 1) * size).limit(size))

    return {
        "items": list(result.scalars().all()),
        "total": total,
        "page": page,
        "size": size,
        "pages": -(-total // size),
    }
