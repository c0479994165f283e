"""
Order service layer
Handles order lookup, cancellation, fulfilment updates and refunds
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_

from goalmania.api.v1.payments.providers import PaymentProviders, select_provider
from goalmania.core.exceptions import (
    AlreadyRefundedException, BadRequestException, ForbiddenException, NotFoundException
)
from goalmania.core.security import is_admin
from goalmania.models import Order, OrderDetails, OrderStatus, User
from goalmania.models.order import PaymentProviderName
from goalmania.services.notification_dispatcher import DeliveryResult, NotificationDispatcher
from goalmania.services.pricing import normalize_patches
from goalmania.utils.helpers import invoice_number, utcnow
from goalmania.utils.money import D
from goalmania.utils.pagination import paginate
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


@dataclass
class OrderActionResult:
    """An order operation plus the emails it triggered"""
    order: Order
    notifications: List[DeliveryResult] = field(default_factory=list)

    @property
    def notification_errors(self) -> List[str]:
        return [
            f"{result.kind}: {result.error}"
            for result in self.notifications
            if not result.success
        ]


class OrderService:
    """Order service for business logic"""

    def __init__(
        self,
        db: AsyncSession,
        providers: Optional[PaymentProviders] = None,
        notifier: Optional[NotificationDispatcher] = None
    ):
        self.db = db
        self.providers = providers or {}
        self.notifier = notifier
        self.state_machine = OrderStateMachine()

    async def _load(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundException("Order not found")
        return order

    async def get_order(
        self,
        order_id: uuid.UUID,
        principal: Optional[Dict[str, Any]] = None
    ) -> Order:
        """
        Get order, restricted to its owner unless the principal is an admin

        Raises:
            NotFoundException: If order not found
            ForbiddenException: If user doesn't have access
        """
        order = await self._load(order_id)
        if principal is not None and not is_admin(principal) and str(order.user_id) != str(principal["id"]):
            raise ForbiddenException("You don't have access to this order")
        return order

    async def get_order_view(self, order_id: uuid.UUID, principal: Dict[str, Any]) -> Dict[str, Any]:
        """Order with the expanded items recorded at checkout, when available"""
        order = await self.get_order(order_id, principal)

        result = await self.db.execute(
            select(OrderDetails.full_items).where(OrderDetails.payment_intent_id == order.payment_intent_id)
        )
        full_items = result.scalar_one_or_none()

        view = order.to_dict()
        view["items"] = normalize_patches(full_items or order.items or [])
        view["can_cancel"] = self.state_machine.is_cancellable(order.status)
        view["invoice_number"] = invoice_number(order.id)
        return view

    async def list_for_user(self, user_id: uuid.UUID, page: int = 1, size: int = 20) -> Dict[str, Any]:
        query = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        return await paginate(self.db, query, page, size)

    async def list_all(
        self,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        size: int = 20
    ) -> Dict[str, Any]:
        """All orders for the admin dashboard, newest first"""
        query = select(Order)
        if status:
            query = query.where(Order.status == status)
        return await paginate(self.db, query.order_by(Order.created_at.desc()), page, size)

    async def cancel(
        self,
        order_id: uuid.UUID,
        principal: Dict[str, Any],
        reason: Optional[str] = None
    ) -> OrderActionResult:
        """
        Cancel a pending or processing order

        Stock is not restored and no refund is issued; refunds are a
        separate admin action.

        Raises:
            ForbiddenException: not the owner and not an admin
            InvalidTransitionException: order is not pending or processing
        """
        order = await self.get_order(order_id, principal)
        self.state_machine.ensure_transition(order.status, OrderStatus.CANCELLED)

        order.status = OrderStatus.CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by = uuid.UUID(str(principal["id"]))
        order.cancellation_reason = reason
        await self.db.commit()

        logger.info(f"Order {order.id} cancelled by {principal['id']} ({principal.get('role')})")
        notification = await self._notify(order, "orderStatusUpdate", {"status": order.status})
        return OrderActionResult(order=order, notifications=[n for n in [notification] if n])

    async def update(
        self,
        order_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        tracking_code: Optional[str] = None,
        admin_id: Optional[str] = None
    ) -> OrderActionResult:
        """
        Admin status / tracking update

        Setting a tracking code on a paid or processing order without an
        explicit status ships it.
        """
        order = await self._load(order_id)
        previous_status = OrderStatus(order.status)
        previous_tracking = order.tracking_code

        target = OrderStatus(status) if status else None
        if tracking_code and target is None and previous_status in (OrderStatus.PAID, OrderStatus.PROCESSING):
            target = OrderStatus.SHIPPED

        if target and target != previous_status:
            self.state_machine.ensure_transition(previous_status, target)
            order.status = target
            if target == OrderStatus.CANCELLED:
                order.cancelled_at = utcnow()
                order.cancelled_by = uuid.UUID(str(admin_id)) if admin_id else None

        if tracking_code is not None:
            order.tracking_code = tracking_code.strip() or None

        await self.db.commit()
        logger.info(f"Order {order.id} updated: status {previous_status.value} -> {OrderStatus(order.status).value}")

        notifications = []
        if OrderStatus(order.status) != previous_status:
            notifications.append(await self._notify(order, "orderStatusUpdate", {
                "status": order.status,
                "tracking_code": order.tracking_code,
            }))
        if order.tracking_code and order.tracking_code != previous_tracking:
            notifications.append(await self._notify(order, "shippingNotification", {
                "tracking_code": order.tracking_code,
            }))
        return OrderActionResult(order=order, notifications=[n for n in notifications if n])

    async def refund(self, order_id: uuid.UUID, amount: Optional[Decimal] = None) -> OrderActionResult:
        """
        Refund an order through its payment provider, at most once

        The refunded flag is checked before the provider is called; a
        provider failure propagates and leaves the order untouched.

        Raises:
            AlreadyRefundedException: order already refunded
            ProviderError: the provider refused or could not be reached
        """
        order = await self._load(order_id)
        if order.refunded:
            raise AlreadyRefundedException()
        if OrderStatus(order.status) == OrderStatus.PENDING:
            raise BadRequestException("Order has no captured payment to refund")
        if amount is not None and D(amount) > D(order.amount):
            raise BadRequestException("Refund amount exceeds the order amount")

        provider_name = PaymentProviderName(order.payment_provider)
        reference = order.provider_reference or order.payment_intent_id
        if provider_name == PaymentProviderName.PAYPAL and not order.provider_reference:
            raise BadRequestException("PayPal order has no capture reference to refund")

        provider = select_provider(self.providers, provider_name.value)
        outcome = await provider.refund(reference, amount)

        result = await self.db.execute(
            update(Order)
            .where(and_(Order.id == order.id, Order.refunded.is_(False)))
            .values(refunded=True, refunded_at=utcnow(), refund_reference=outcome.refund_reference)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.error(f"Order {order.id} refunded concurrently; provider refund {outcome.refund_reference} is extra")
            raise AlreadyRefundedException()
        await self.db.commit()

        order = await self._load(order.id)
        logger.info(f"Order {order.id} refunded via {provider_name.value}: {outcome.refund_reference}")

        notification = await self._notify(order, "refundConfirmation", {
            "amount": amount if amount is not None else order.amount,
        })
        return OrderActionResult(order=order, notifications=[n for n in [notification] if n])

    async def notify_shipping(self, order_id: uuid.UUID) -> OrderActionResult:
        order = await self._load(order_id)
        if not order.tracking_code:
            raise BadRequestException("Order has no tracking code")
        notification = await self._notify(order, "shippingNotification", {"tracking_code": order.tracking_code})
        return OrderActionResult(order=order, notifications=[n for n in [notification] if n])

    async def send_invoice(self, order_id: uuid.UUID) -> OrderActionResult:
        order = await self._load(order_id)
        created_at = order.created_at.strftime("%d/%m/%Y") if order.created_at else None
        notification = await self._notify(order, "invoice", {
            "invoice_number": invoice_number(order.id),
            "items": normalize_patches(order.items or []),
            "amount": order.amount,
            "discount_total": order.discount_total,
            "coupon": order.coupon,
            "shipping_address": order.shipping_address,
            "date": created_at,
        })
        return OrderActionResult(order=order, notifications=[n for n in [notification] if n])

    async def _notify(self, order: Order, kind: str, params: Dict[str, Any]) -> Optional[DeliveryResult]:
        """Send an order email; failures are reported, never raised"""
        if self.notifier is None:
            return None
        user = await self.db.get(User, order.user_id)
        if not user:
            logger.warning(f"Order {order.id} has no user to notify")
            return DeliveryResult(success=False, kind=kind, recipient="", error="order owner not found")
        return await self.notifier.send(
            kind,
            user.email,
            {"user_name": user.name, "order_id": str(order.id), **params},
            language=user.language,
        )
