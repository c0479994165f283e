"""
Mollie Payments API integration
"""

from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from mollie.api.client import Client
from mollie.api.error import Error as MollieError, RequestError, ResponseError, UnauthorizedError

from goalmania.core.config import settings
from goalmania.core.exceptions import (
    ProviderAuthFailure, ProviderError, ProviderRejected, ProviderUnavailable
)
from goalmania.utils.money import D, format_amount
from .base import FAILED, PENDING, SUCCEEDED, PaymentHandle, PaymentOutcome, PaymentProvider, RefundOutcome, run_sync

logger = logging.getLogger(__name__)

PROVIDER = "mollie"

FAILED_STATUSES = {"failed", "canceled", "expired"}


def map_mollie_error(e: MollieError) -> ProviderError:
    if isinstance(e, UnauthorizedError):
        return ProviderAuthFailure(PROVIDER, str(e))
    if isinstance(e, RequestError):
        return ProviderUnavailable(PROVIDER, str(e))
    if isinstance(e, ResponseError):
        if (e.status or 500) >= 500 or e.status == 429:
            return ProviderUnavailable(PROVIDER, str(e))
        if e.status == 403:
            return ProviderAuthFailure(PROVIDER, str(e))
        return ProviderRejected(PROVIDER, str(e))
    return ProviderError(PROVIDER, str(e))


class MollieProvider(PaymentProvider):
    """
    Asynchronous Mollie checkout

    Creation returns a hosted checkout URL; Mollie later calls the webhook
    with the payment id only, and the status is always re-read from the API.
    Only ``paid`` counts as success.
    """

    name = PROVIDER

    def __init__(self, api_key: Optional[str] = None, client: Optional[Client] = None):
        self.api_key = api_key or settings.MOLLIE_API_KEY
        self._mollie = client

    @property
    def client(self) -> Client:
        if self._mollie is None:
            if not self.api_key:
                raise ProviderAuthFailure(PROVIDER, "Mollie API key is not configured")
            self._mollie = Client(timeout=settings.PAYMENT_PROVIDER_TIMEOUT)
            self._mollie.set_api_key(self.api_key)
        return self._mollie

    async def _call(self, func, *args):
        try:
            return await run_sync(PROVIDER, func, *args)
        except MollieError as e:
            logger.error(f"Mollie call failed: {e}")
            raise map_mollie_error(e)

    async def create_intent(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> PaymentHandle:
        base_url = settings.webhook_base_url
        payment = await self._call(self.client.payments.create, {
            "amount": {"currency": currency.upper(), "value": format_amount(amount)},
            "description": f"{settings.STORE_NAME} order",
            "redirectUrl": f"{settings.FRONTEND_URL.rstrip('/')}/checkout/success",
            "webhookUrl": f"{base_url}/api/v1/payments/webhooks/mollie",
            "metadata": {key: str(value) for key, value in metadata.items()},
        })
        logger.info(f"Mollie payment {payment.id} created for {amount} {currency}")
        return PaymentHandle(
            provider=PROVIDER,
            intent_id=payment.id,
            status=PENDING,
            approval_url=payment.checkout_url,
        )

    async def confirm(self, intent_id: str) -> PaymentOutcome:
        payment = await self._call(self.client.payments.get, intent_id)

        if payment.status == "paid":
            status = SUCCEEDED
        elif payment.status in FAILED_STATUSES:
            status = FAILED
        else:
            status = PENDING

        amount = payment.amount or {}
        return PaymentOutcome(
            status=status,
            provider=PROVIDER,
            intent_id=payment.id,
            provider_reference=payment.id,
            amount=D(amount["value"]) if amount.get("value") else None,
            currency=(amount.get("currency") or "").lower() or None,
            metadata=dict(payment.metadata or {}),
        )

    async def refund(self, provider_reference: str, amount: Optional[Decimal] = None) -> RefundOutcome:
        if amount is None:
            payment = await self._call(self.client.payments.get, provider_reference)
            value = payment.amount
        else:
            value = {"currency": settings.DEFAULT_CURRENCY.upper(), "value": format_amount(amount)}

        refunds = self.client.payment_refunds.with_parent_id(provider_reference)
        refund = await self._call(refunds.create, {"amount": value})
        logger.info(f"Mollie refund {refund.id} for {provider_reference}: {refund.status}")
        return RefundOutcome(
            status=FAILED if refund.status == "failed" else SUCCEEDED,
            refund_reference=refund.id,
        )
