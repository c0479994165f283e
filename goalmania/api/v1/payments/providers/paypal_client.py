"""
PayPal Orders v2 integration
"""

from decimal import Decimal
from typing import Any, Dict, Optional
import json
import logging

import httpx

from goalmania.core.config import settings
from goalmania.core.exceptions import (
    ProviderAuthFailure, ProviderError, ProviderRejected, ProviderUnavailable
)
from goalmania.utils.money import D, format_amount
from .base import FAILED, PENDING, SUCCEEDED, PaymentHandle, PaymentOutcome, PaymentProvider, RefundOutcome

logger = logging.getLogger(__name__)

PROVIDER = "paypal"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    details = body.get("details") or []
    if details and details[0].get("issue"):
        return details[0]["issue"]
    return body.get("message") or body.get("error_description") or body.get("name") or f"HTTP {response.status_code}"


def map_paypal_response(response: httpx.Response) -> ProviderError:
    message = _error_message(response)
    if response.status_code in (401, 403):
        return ProviderAuthFailure(PROVIDER, message)
    if response.status_code >= 500 or response.status_code == 429:
        return ProviderUnavailable(PROVIDER, message)
    return ProviderRejected(PROVIDER, message)


class PayPalProvider(PaymentProvider):
    """
    Two-step PayPal checkout: create an order, the buyer approves it, then
    the server captures it. The capture response is authoritative.
    """

    name = PROVIDER

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id or settings.PAYPAL_CLIENT_ID
        self.client_secret = client_secret or settings.PAYPAL_CLIENT_SECRET
        self.base_url = base_url or settings.paypal_base_url
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.PAYMENT_PROVIDER_TIMEOUT,
            transport=self.transport,
        )

    async def _request(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs
    ) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            raise ProviderUnavailable(PROVIDER, f"no response within {settings.PAYMENT_PROVIDER_TIMEOUT}s")
        except httpx.TransportError as e:
            raise ProviderUnavailable(PROVIDER, f"connection failed: {e}")

        if response.is_error:
            error = map_paypal_response(response)
            logger.error(f"PayPal {method} {url} returned {response.status_code}: {error.detail}")
            raise error
        return response

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        """OAuth2 client-credentials token"""
        if not self.client_id or not self.client_secret:
            raise ProviderAuthFailure(PROVIDER, "PayPal credentials are not configured")

        response = await self._request(
            client,
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        return response.json()["access_token"]

    async def _api(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with self._client() as client:
            token = await self._access_token(client)
            response = await self._request(
                client,
                method,
                url,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                content=json.dumps(payload) if payload is not None else None,
            )
            return response.json() if response.content else {}

    async def create_intent(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> PaymentHandle:
        order = await self._api("POST", "/v2/checkout/orders", {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": currency.upper(), "value": format_amount(amount)},
                "custom_id": str(metadata.get("userId", "")),
                "description": f"{settings.STORE_NAME} order",
            }],
        })
        approval_url = next(
            (link["href"] for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info(f"PayPal order {order['id']} created for {amount} {currency}")
        return PaymentHandle(provider=PROVIDER, intent_id=order["id"], status=PENDING, approval_url=approval_url)

    async def confirm(self, intent_id: str) -> PaymentOutcome:
        """Capture the approved order"""
        order = await self._api("POST", f"/v2/checkout/orders/{intent_id}/capture", {})

        capture: Dict[str, Any] = {}
        units = order.get("purchase_units") or []
        if units:
            captures = (units[0].get("payments") or {}).get("captures") or []
            if captures:
                capture = captures[0]

        if order.get("status") == "COMPLETED":
            status = SUCCEEDED
        elif order.get("status") in ("VOIDED",) or capture.get("status") == "DECLINED":
            status = FAILED
        else:
            status = PENDING

        amount = capture.get("amount") or {}
        return PaymentOutcome(
            status=status,
            provider=PROVIDER,
            intent_id=order.get("id", intent_id),
            provider_reference=capture.get("id"),
            amount=D(amount["value"]) if amount.get("value") else None,
            currency=(amount.get("currency_code") or "").lower() or None,
        )

    async def refund(self, provider_reference: str, amount: Optional[Decimal] = None) -> RefundOutcome:
        payload: Dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = {
                "value": format_amount(amount),
                "currency_code": settings.DEFAULT_CURRENCY.upper(),
            }
        refund = await self._api("POST", f"/v2/payments/captures/{provider_reference}/refund", payload)
        logger.info(f"PayPal refund {refund.get('id')} for capture {provider_reference}: {refund.get('status')}")
        return RefundOutcome(
            status=SUCCEEDED if refund.get("status") in ("COMPLETED", "PENDING") else FAILED,
            refund_reference=refund.get("id"),
        )
