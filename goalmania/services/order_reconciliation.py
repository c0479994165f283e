"""
Turns a captured payment into exactly one order

Webhooks are delivered at least once, so ``reconcile`` is keyed on the
provider intent id: an existing order short-circuits, and a concurrent
insert losing the unique-key race is treated as a duplicate delivery.
Stock is decremented with a floor guard in the same savepoint as the
order insert; a shortfall rolls both back and rejects the checkout.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError

from goalmania.api.v1.payments.providers import PaymentOutcome
from goalmania.core.cache import CacheBackend
from goalmania.core.exceptions import (
    BadRequestException, ConflictException, InsufficientStockException, NotFoundException
)
from goalmania.models import Address, Order, OrderDetails, OrderStatus, Product, User
from goalmania.models.order import OrderDetailsStatus
from goalmania.services.discount_rule_service import ACTIVE_RULES_KEY, DiscountRuleService
from goalmania.services.notification_dispatcher import DeliveryResult, NotificationDispatcher
from goalmania.services.pricing import normalize_patches
from goalmania.utils.money import D, round_money

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    order: Order
    created: bool
    notification: Optional[DeliveryResult] = None


def _quantities(items: List[Dict[str, Any]]) -> Dict[str, int]:
    """Total quantity per product id, ignoring items without a product"""
    totals: Dict[str, int] = {}
    for item in items:
        product_id = item.get("productId")
        if product_id:
            totals[str(product_id)] = totals.get(str(product_id), 0) + int(item.get("quantity") or 0)
    return totals


class ReconciliationService:
    """Creates orders from confirmed payments"""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
        cache: Optional[CacheBackend] = None
    ):
        self.db = db
        self.notifier = notifier
        self.cache = cache
        self.rule_service = DiscountRuleService(db)

    async def _find_order(self, payment_intent_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _find_details(self, payment_intent_id: str) -> Optional[OrderDetails]:
        result = await self.db.execute(
            select(OrderDetails)
            .where(OrderDetails.payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _shipping_address(self, address_id: Optional[uuid.UUID]) -> Optional[Dict[str, str]]:
        if not address_id:
            return None
        address = await self.db.get(Address, address_id)
        return address.as_shipping_address() if address else None

    async def _decrement_stock(self, quantities: Dict[str, int]) -> None:
        """
        Raises:
            InsufficientStockException: a product has fewer units than ordered
        """
        for product_id, quantity in quantities.items():
            result = await self.db.execute(
                update(Product)
                .where(
                    and_(
                        Product.id == uuid.UUID(product_id),
                        Product.stock_quantity >= quantity,
                    )
                )
                .values(stock_quantity=Product.stock_quantity - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                product = await self.db.get(Product, uuid.UUID(product_id), populate_existing=True)
                name = product.name if product else product_id
                available = product.stock_quantity if product else 0
                raise InsufficientStockException(name, available, quantity)

    async def _refresh_rule_cache(self, recorded: List[str], skipped: List[str]) -> None:
        """Drop the cached active rules once a used rule hits its cap"""
        if self.cache is None:
            return
        if skipped or await self.rule_service.exhausted(recorded):
            await self.cache.delete(ACTIVE_RULES_KEY)

    async def reconcile(self, payment_intent_id: str, outcome: PaymentOutcome) -> ReconciliationResult:
        """
        Persist the order for a succeeded payment

        Raises:
            BadRequestException: the payment has not succeeded
            NotFoundException: no checkout was recorded for the intent
            InsufficientStockException: stock ran out since checkout; the
                checkout is marked rejected and the payment needs a refund
            ConflictException: the checkout was rejected on an earlier delivery
        """
        if not outcome.succeeded:
            raise BadRequestException(
                f"Payment {payment_intent_id} is {outcome.status}", error_code="PAYMENT_NOT_CAPTURED"
            )

        existing = await self._find_order(payment_intent_id)
        if existing:
            logger.info(f"Duplicate confirmation for {payment_intent_id}, order {existing.id} already exists")
            return ReconciliationResult(order=existing, created=False)

        details = await self._find_details(payment_intent_id)
        if not details:
            raise NotFoundException(f"No checkout recorded for payment {payment_intent_id}")
        if details.status == OrderDetailsStatus.REJECTED:
            raise ConflictException(
                f"Checkout for payment {payment_intent_id} was rejected: {details.failure_reason}",
                error_code="CHECKOUT_REJECTED",
            )

        if outcome.amount is not None and round_money(outcome.amount) != round_money(details.amount):
            logger.warning(
                f"Captured amount {outcome.amount} differs from checkout amount {details.amount} "
                f"for {payment_intent_id}"
            )

        items = normalize_patches(details.full_items or [])
        order = Order(
            user_id=details.user_id,
            items=items,
            amount=D(details.amount),
            discount_total=D(details.discount_total or 0),
            currency=details.currency,
            status=OrderStatus.PAID,
            shipping_address=await self._shipping_address(details.address_id),
            coupon=details.coupon_data,
            payment_intent_id=payment_intent_id,
            payment_provider=details.provider,
            provider_reference=outcome.provider_reference,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(order)
                await self.db.flush()
                await self._decrement_stock(_quantities(items))
                details.status = OrderDetailsStatus.COMPLETED
                recorded, skipped = await self.rule_service.record_usage(
                    rule["rule_id"] for rule in details.applied_rules or []
                )
        except IntegrityError:
            existing = await self._find_order(payment_intent_id)
            if existing is None:
                raise
            logger.info(f"Concurrent confirmation for {payment_intent_id}, order {existing.id} kept")
            return ReconciliationResult(order=existing, created=False)
        except InsufficientStockException as e:
            details = await self._find_details(payment_intent_id)
            details.status = OrderDetailsStatus.REJECTED
            details.failure_reason = e.detail
            await self.db.commit()
            logger.error(
                f"Payment {payment_intent_id} captured but rejected: {e.detail}. "
                f"Refund required via {details.provider}"
            )
            raise

        await self.db.commit()
        logger.info(f"Order {order.id} created from {payment_intent_id} ({order.amount} {order.currency})")
        await self._refresh_rule_cache(recorded, skipped)

        notification = await self.send_confirmation(order)
        return ReconciliationResult(order=order, created=True, notification=notification)

    async def record_failure(self, payment_intent_id: str, reason: str) -> None:
        """Keep the failure reason on the pending checkout; the customer may retry"""
        details = await self._find_details(payment_intent_id)
        if not details:
            logger.warning(f"Payment failure for unknown intent {payment_intent_id}: {reason}")
            return
        details.failure_reason = reason
        await self.db.flush()
        logger.info(f"Payment {payment_intent_id} failed: {reason}")

    async def send_confirmation(self, order: Order) -> Optional[DeliveryResult]:
        if self.notifier is None:
            return None
        user = await self.db.get(User, order.user_id)
        if not user:
            logger.warning(f"Order {order.id} has no user to notify")
            return None
        result = await self.notifier.send(
            "orderConfirmation",
            user.email,
            {
                "user_name": user.name,
                "order_id": str(order.id),
                "amount": order.amount,
                "items": order.items,
            },
            language=user.language,
        )
        if not result.success:
            logger.warning(f"Order {order.id} confirmation email not sent: {result.error}")
        return result
