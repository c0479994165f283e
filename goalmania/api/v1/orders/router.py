"""
Order API routes
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from goalmania.core.config import settings
from goalmania.core.database import get_db
from goalmania.core.security import get_current_user
from goalmania.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from .schemas import (
    OrderActionResponse,
    OrderCancel,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
)
from .services import OrderActionResult, OrderService

router = APIRouter()


def action_response(result: OrderActionResult) -> OrderActionResponse:
    return OrderActionResponse(
        order=OrderResponse.model_validate(result.order),
        notifications=[notification.__dict__ for notification in result.notifications],
        warnings=result.notification_errors,
    )


@router.get(
    "/",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Get paginated list of the current user's orders"
)
async def list_orders(
    page: int = Query(1, ge=1),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List orders"""
    service = OrderService(db)
    return await service.list_for_user(uuid.UUID(current_user["id"]), page, size)


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order",
    description="Get order details; owners and admins only"
)
async def get_order(
    order_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get order details"""
    service = OrderService(db)
    return await service.get_order_view(order_id, current_user)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderActionResponse,
    summary="Cancel order",
    description="Cancel a pending or processing order"
)
async def cancel_order(
    order_id: uuid.UUID,
    cancel_request: OrderCancel,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Cancel order"""
    service = OrderService(db, notifier=notifier)
    result = await service.cancel(order_id, current_user, cancel_request.reason)
    return action_response(result)
