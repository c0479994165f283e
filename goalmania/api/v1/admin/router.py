"""Admin management endpoints"""

from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from goalmania.api.v1.coupons.schemas import CouponCreate, CouponResponse, CouponUpdate
from goalmania.api.v1.discount_rules.schemas import (
    DiscountRuleCreate, DiscountRuleResponse, DiscountRuleUpdate
)
from goalmania.api.v1.orders.router import action_response
from goalmania.api.v1.orders.schemas import (
    OrderActionResponse, OrderListResponse, OrderUpdate, RefundRequest
)
from goalmania.api.v1.orders.services import OrderService
from goalmania.api.v1.payments.providers import PaymentProviders, get_payment_providers, select_provider
from goalmania.core.cache import CacheBackend, get_cache
from goalmania.core.config import settings
from goalmania.core.database import get_db
from goalmania.core.exceptions import BadRequestException
from goalmania.core.security import require_admin, require_admin_or_revalidate_token
from goalmania.models.order import OrderStatus
from goalmania.services.coupon_service import CouponService
from goalmania.services.discount_rule_service import ACTIVE_RULES_KEY, DiscountRuleService
from goalmania.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from .schemas import ApplePayDomain, ApplePayDomainResponse, CacheRevalidate, CacheRevalidateResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# Orders

@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All orders, newest first"""
    return await OrderService(db).list_all(order_status, page, size)


@router.patch("/orders/{order_id}", response_model=OrderActionResponse)
async def update_order(
    order_id: uuid.UUID,
    update: OrderUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Change status and/or tracking code; customers are emailed"""
    service = OrderService(db, notifier=notifier)
    result = await service.update(order_id, update.status, update.tracking_code, current_user["id"])
    return action_response(result)


@router.post("/orders/{order_id}/refund", response_model=OrderActionResponse)
async def refund_order(
    order_id: uuid.UUID,
    request: Optional[RefundRequest] = None,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Refund through the order's payment provider"""
    service = OrderService(db, providers=providers, notifier=notifier)
    amount: Optional[Decimal] = request.amount if request else None
    result = await service.refund(order_id, amount)
    logger.info(f"Admin {current_user['id']} refunded order {order_id}")
    return action_response(result)


@router.post("/orders/{order_id}/notify-shipping", response_model=OrderActionResponse)
async def notify_shipping(
    order_id: uuid.UUID,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Resend the shipping email"""
    result = await OrderService(db, notifier=notifier).notify_shipping(order_id)
    return action_response(result)


@router.post("/orders/{order_id}/send-invoice", response_model=OrderActionResponse)
async def send_invoice(
    order_id: uuid.UUID,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Email the invoice to the customer"""
    result = await OrderService(db, notifier=notifier).send_invoice(order_id)
    return action_response(result)


# Coupons

@router.get("/coupons", response_model=List[CouponResponse])
async def list_coupons(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CouponService(db).list_coupons()


@router.post("/coupons", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    coupon: CouponCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CouponService(db).create(coupon.model_dump())


@router.patch("/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: uuid.UUID,
    coupon: CouponUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CouponService(db).update(coupon_id, coupon.model_dump(exclude_unset=True))


@router.delete("/coupons/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(
    coupon_id: uuid.UUID,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await CouponService(db).delete(coupon_id)


# Discount rules

@router.get("/discount-rules", response_model=List[DiscountRuleResponse])
async def list_discount_rules(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Every rule, including inactive and expired ones"""
    return await DiscountRuleService(db).list_all()


@router.post("/discount-rules", response_model=DiscountRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_discount_rule(
    rule: DiscountRuleCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache)
):
    created = await DiscountRuleService(db).create(rule.model_dump())
    await db.commit()
    await cache.delete(ACTIVE_RULES_KEY)
    return created


@router.patch("/discount-rules/{rule_id}", response_model=DiscountRuleResponse)
async def update_discount_rule(
    rule_id: uuid.UUID,
    rule: DiscountRuleUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache)
):
    updated = await DiscountRuleService(db).update(rule_id, rule.model_dump(exclude_unset=True))
    await db.commit()
    await cache.delete(ACTIVE_RULES_KEY)
    return updated


@router.delete("/discount-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_discount_rule(
    rule_id: uuid.UUID,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache)
):
    await DiscountRuleService(db).delete(rule_id)
    await db.commit()
    await cache.delete(ACTIVE_RULES_KEY)


# Cache and storefront setup

@router.post("/cache/revalidate", response_model=CacheRevalidateResponse)
async def revalidate_cache(
    request: CacheRevalidate,
    principal: dict = Depends(require_admin_or_revalidate_token),
    cache: CacheBackend = Depends(get_cache)
):
    """Invalidate cached responses by key or prefix"""
    removed = 0
    if request.key:
        removed += int(await cache.delete(request.key))
    if request.prefix:
        removed += await cache.delete_prefix(request.prefix)
    logger.info(f"Cache revalidated by {principal['role']}: key={request.key} prefix={request.prefix} removed={removed}")
    return {"revalidated": True, "removed": removed}


@router.post("/apple-pay/domains", response_model=ApplePayDomainResponse)
async def register_apple_pay_domain(
    request: ApplePayDomain,
    current_user: dict = Depends(require_admin),
    providers: PaymentProviders = Depends(get_payment_providers)
):
    """Register a storefront domain with Stripe for Apple Pay"""
    provider = select_provider(providers, "stripe")
    if not hasattr(provider, "register_apple_pay_domain"):
        raise BadRequestException("Apple Pay requires the Stripe provider")
    domain = await provider.register_apple_pay_domain(request.domain)
    return {"success": True, "domain": domain}
