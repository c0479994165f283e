"""
Payment confirmation: provider webhooks and client-side confirmations
"""

from typing import Any, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from goalmania.core.cache import CacheBackend
from goalmania.core.exceptions import ConflictException, NotFoundException, ProviderRejected
from goalmania.core.security import is_admin
from goalmania.models import Order, OrderDetails
from goalmania.services.notification_dispatcher import NotificationDispatcher
from goalmania.services.order_reconciliation import ReconciliationService
from .providers import FAILED, PaymentOutcome, PaymentProviders, select_provider, with_retries

logger = logging.getLogger(__name__)

STRIPE_SUCCEEDED = "payment_intent.succeeded"
STRIPE_FAILED = "payment_intent.payment_failed"


class PaymentService:
    """Routes provider confirmations into order reconciliation"""

    def __init__(
        self,
        db: AsyncSession,
        providers: PaymentProviders,
        notifier: Optional[NotificationDispatcher] = None,
        cache: Optional[CacheBackend] = None
    ):
        self.db = db
        self.providers = providers
        self.reconciliation = ReconciliationService(db, notifier, cache)

    async def _owned_details(self, payment_intent_id: str, user: Dict[str, Any]) -> OrderDetails:
        result = await self.db.execute(
            select(OrderDetails).where(OrderDetails.payment_intent_id == payment_intent_id)
        )
        details = result.scalar_one_or_none()
        if not details or (not is_admin(user) and str(details.user_id) != str(user["id"])):
            raise NotFoundException("Payment not found")
        return details

    async def _existing_order(self, payment_intent_id: str) -> Optional[Order]:
        result = await self.db.execute(select(Order).where(Order.payment_intent_id == payment_intent_id))
        return result.scalar_one_or_none()

    async def _acknowledge(self, payment_intent_id: str, outcome: PaymentOutcome) -> Dict[str, Any]:
        """
        Webhook flavour of reconcile: anything that retrying cannot fix is
        acknowledged so the provider stops redelivering
        """
        if not outcome.succeeded:
            if outcome.status == FAILED:
                await self.reconciliation.record_failure(payment_intent_id, f"{outcome.provider} reported {outcome.status}")
            logger.info(f"{outcome.provider} payment {payment_intent_id} is {outcome.status}, no order created")
            return {"received": True, "status": outcome.status}

        try:
            result = await self.reconciliation.reconcile(payment_intent_id, outcome)
        except NotFoundException:
            logger.warning(f"{outcome.provider} payment {payment_intent_id} has no recorded checkout, ignored")
            return {"received": True, "status": "ignored"}
        except ConflictException as e:
            logger.error(f"{outcome.provider} payment {payment_intent_id} rejected: {e.detail}")
            return {"received": True, "status": "rejected"}

        return {
            "received": True,
            "status": "created" if result.created else "duplicate",
            "order_id": str(result.order.id),
        }

    async def handle_stripe_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a Stripe event and reconcile succeeded intents

        The event body is only used to find the intent; its status is
        re-read from the Stripe API.
        """
        provider = select_provider(self.providers, "stripe")
        event = provider.parse_webhook(payload, signature)
        event_type = event["type"]
        intent_id = event["data"]["object"]["id"]

        if event_type == STRIPE_SUCCEEDED:
            outcome = await with_retries(lambda: provider.confirm(intent_id))
            return await self._acknowledge(intent_id, outcome)

        if event_type == STRIPE_FAILED:
            error = event["data"]["object"].get("last_payment_error") or {}
            await self.reconciliation.record_failure(intent_id, error.get("message") or "payment failed")
            return {"received": True, "status": "failed"}

        logger.debug(f"Unhandled Stripe event {event_type}")
        return {"received": True, "status": "ignored"}

    async def handle_mollie_webhook(self, payment_id: str) -> Dict[str, Any]:
        """Mollie only sends the payment id; the status is always polled"""
        provider = select_provider(self.providers, "mollie")
        try:
            outcome = await with_retries(lambda: provider.confirm(payment_id))
        except ProviderRejected as e:
            logger.warning(f"Mollie payment {payment_id} could not be read, ignored: {e.detail}")
            return {"received": True, "status": "ignored"}
        return await self._acknowledge(payment_id, outcome)

    async def capture_paypal(self, paypal_order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Capture an approved PayPal order and create the order

        Capture is not retried; a repeated request for an already
        reconciled payment returns the existing order.
        """
        await self._owned_details(paypal_order_id, user)
        existing = await self._existing_order(paypal_order_id)
        if existing:
            return {"status": "succeeded", "order_id": str(existing.id), "created": False}

        provider = select_provider(self.providers, "paypal")
        outcome = await provider.confirm(paypal_order_id)
        if not outcome.succeeded:
            await self.reconciliation.record_failure(paypal_order_id, f"capture {outcome.status}")
            raise ProviderRejected("paypal", f"capture {outcome.status}")

        result = await self.reconciliation.reconcile(paypal_order_id, outcome)
        return {"status": outcome.status, "order_id": str(result.order.id), "created": result.created}

    async def confirm_stripe(self, intent_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Client-side confirmation fallback for when the webhook is late

        The client-reported intent id is verified against Stripe first.
        """
        await self._owned_details(intent_id, user)
        provider = select_provider(self.providers, "stripe")
        outcome = await with_retries(lambda: provider.confirm(intent_id))

        if outcome.status == FAILED:
            raise ProviderRejected("stripe", "payment failed")
        if not outcome.succeeded:
            return {"status": outcome.status, "order_id": None, "created": False}

        result = await self.reconciliation.reconcile(intent_id, outcome)
        return {"status": outcome.status, "order_id": str(result.order.id), "created": result.created}
