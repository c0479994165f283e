"""
Checkout service: quotes carts and opens payment intents
"""

from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from goalmania.api.v1.payments.providers import PaymentProviders, select_provider, with_retries
from goalmania.core.exceptions import NotFoundException, ValidationException
from goalmania.models import Address, OrderDetails
from goalmania.models.order import OrderDetailsStatus, PaymentProviderName
from goalmania.services.coupon_service import CouponService
from goalmania.services.pricing import PricingService, Quote
from goalmania.utils.money import ZERO

logger = logging.getLogger(__name__)


class CheckoutService:
    """Turns a priced cart into a provider payment intent"""

    def __init__(self, db: AsyncSession, providers: Optional[PaymentProviders] = None):
        self.db = db
        self.providers = providers or {}
        self.pricing = PricingService(db)
        self.coupons = CouponService(db)

    async def quote(
        self,
        user: Dict[str, Any],
        cart: List[Dict[str, Any]],
        coupon_code: Optional[str] = None
    ) -> Quote:
        return await self.pricing.quote(cart, user.get("role"), coupon_code)

    async def create_intent(
        self,
        user: Dict[str, Any],
        provider_name: PaymentProviderName,
        address_id: uuid.UUID,
        cart: List[Dict[str, Any]],
        coupon_code: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Price the cart, redeem the coupon and open a provider payment

        The checkout snapshot is stored as OrderDetails keyed by the
        provider intent id; the order itself is only created once the
        payment is confirmed.

        Raises:
            NotFoundException: address not found for this user
            ValidationException: nothing left to pay
            UsageExceededException: coupon exhausted by a concurrent checkout
            ProviderError: the provider could not open the payment
        """
        user_id = uuid.UUID(str(user["id"]))
        address = await self.db.get(Address, address_id)
        if not address or address.user_id != user_id:
            raise NotFoundException("Shipping address not found")

        quote = await self.quote(user, cart, coupon_code)
        if quote.breakdown.amount <= ZERO:
            raise ValidationException("Order total must be greater than zero")

        if quote.coupon:
            await self.coupons.apply(quote.coupon.coupon_id)

        provider = select_provider(self.providers, provider_name)
        handle = await with_retries(lambda: provider.create_intent(
            quote.breakdown.amount,
            quote.currency,
            {"userId": str(user_id), "addressId": str(address_id)},
        ))

        details = OrderDetails(
            payment_intent_id=handle.intent_id,
            provider=PaymentProviderName(provider_name),
            user_id=user_id,
            address_id=address_id,
            full_items=quote.items,
            coupon_data=quote.coupon_data,
            applied_rules=[discount.to_dict() for discount in quote.discounts],
            amount=quote.breakdown.amount,
            discount_total=quote.breakdown.discount_total + quote.breakdown.coupon_discount,
            currency=quote.currency,
            status=OrderDetailsStatus.PENDING,
        )
        self.db.add(details)
        await self.db.flush()

        logger.info(
            f"Checkout {handle.intent_id} opened with {handle.provider} for user {user_id}: "
            f"{quote.breakdown.amount} {quote.currency}"
        )
        return {
            "provider": handle.provider,
            "payment_intent_id": handle.intent_id,
            "client_secret": handle.client_secret,
            "approval_url": handle.approval_url,
            "quote": quote.to_dict(),
        }
