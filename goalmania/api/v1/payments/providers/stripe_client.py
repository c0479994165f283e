"""
Stripe PaymentIntents integration
"""

from decimal import Decimal
from typing import Any, Dict, Optional
import json
import logging

import stripe

from goalmania.core.config import settings
from goalmania.core.exceptions import (
    BadRequestException, ProviderAuthFailure, ProviderError, ProviderRejected, ProviderUnavailable
)
from goalmania.utils.money import D, to_minor_units
from .base import (
    FAILED, PENDING, SUCCEEDED, PaymentHandle, PaymentOutcome, PaymentProvider, RefundOutcome, run_sync
)

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

# Intent states that can no longer succeed without a new payment method
FAILED_STATUSES = {"canceled"}


def map_stripe_error(e: stripe.StripeError) -> ProviderError:
    """Translate a Stripe SDK error into the provider error taxonomy"""
    message = getattr(e, "user_message", None) or str(e)
    if isinstance(e, (stripe.AuthenticationError, stripe.PermissionError)):
        return ProviderAuthFailure(PROVIDER, message)
    if isinstance(e, (stripe.CardError, stripe.InvalidRequestError, stripe.IdempotencyError)):
        return ProviderRejected(PROVIDER, message)
    if isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError)):
        return ProviderUnavailable(PROVIDER, message)
    if (getattr(e, "http_status", None) or 500) >= 500:
        return ProviderUnavailable(PROVIDER, message)
    return ProviderError(PROVIDER, message)


class StripeProvider(PaymentProvider):
    """
    Card, Apple Pay and Google Pay through Stripe PaymentIntents

    Confirmation happens client side with the returned client secret; the
    server re-reads the intent before reconciling an order.
    """

    name = PROVIDER

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    async def _call(self, func, *args, **kwargs):
        if not self.api_key:
            raise ProviderAuthFailure(PROVIDER, "Stripe secret key is not configured")
        try:
            return await run_sync(PROVIDER, func, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe call {getattr(func, '__qualname__', func)} failed: {e}")
            raise map_stripe_error(e)

    async def create_intent(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> PaymentHandle:
        intent = await self._call(
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata={key: str(value) for key, value in metadata.items()},
        )
        logger.info(f"Stripe payment intent {intent.id} created for {amount} {currency}")
        return PaymentHandle(
            provider=PROVIDER,
            intent_id=intent.id,
            status=PENDING,
            client_secret=intent.client_secret,
        )

    async def confirm(self, intent_id: str) -> PaymentOutcome:
        intent = await self._call(stripe.PaymentIntent.retrieve, intent_id)

        if intent.status == "succeeded":
            status = SUCCEEDED
        elif intent.status in FAILED_STATUSES or (
            intent.status == "requires_payment_method" and getattr(intent, "last_payment_error", None)
        ):
            status = FAILED
        else:
            status = PENDING

        return PaymentOutcome(
            status=status,
            provider=PROVIDER,
            intent_id=intent.id,
            provider_reference=intent.id,
            amount=D(intent.amount) / 100,
            currency=intent.currency,
            metadata=dict(intent.metadata or {}),
        )

    async def refund(self, provider_reference: str, amount: Optional[Decimal] = None) -> RefundOutcome:
        params: Dict[str, Any] = {"payment_intent": provider_reference}
        if amount is not None:
            params["amount"] = to_minor_units(amount)

        refund = await self._call(stripe.Refund.create, **params)
        logger.info(f"Stripe refund {refund.id} for {provider_reference}: {refund.status}")
        return RefundOutcome(
            status=SUCCEEDED if refund.status in ("succeeded", "pending") else FAILED,
            refund_reference=refund.id,
        )

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery against the endpoint secret and return
        the event as plain JSON

        Raises:
            BadRequestException: missing header, bad signature or bad payload
        """
        if not self.webhook_secret:
            raise ProviderAuthFailure(PROVIDER, "Stripe webhook secret is not configured")
        if not signature:
            raise BadRequestException("Missing Stripe-Signature header", error_code="INVALID_SIGNATURE")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            return json.loads(payload)
        except ValueError:
            raise BadRequestException("Invalid webhook payload", error_code="INVALID_PAYLOAD")
        except stripe.SignatureVerificationError:
            raise BadRequestException("Invalid webhook signature", error_code="INVALID_SIGNATURE")

    async def register_apple_pay_domain(self, domain: str) -> str:
        """Register a storefront domain for Apple Pay on the web"""
        registered = await self._call(stripe.ApplePayDomain.create, domain_name=domain)
        logger.info(f"Apple Pay domain {registered.domain_name} registered")
        return registered.domain_name
