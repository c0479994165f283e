"""
Checkout API routes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from goalmania.api.v1.payments.providers import PaymentProviders, get_payment_providers
from goalmania.core.database import get_db
from goalmania.core.security import get_current_user
from .schemas import IntentRequest, IntentResponse, QuoteRequest, QuoteResponse
from .services import CheckoutService

router = APIRouter()


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Price cart",
    description="Price a cart with the active discount rules and an optional coupon"
)
async def quote_cart(
    request: QuoteRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Quote cart"""
    service = CheckoutService(db)
    quote = await service.quote(current_user, [item.as_entry() for item in request.items], request.coupon_code)
    return quote.to_dict()


@router.post(
    "/intent",
    response_model=IntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payment intent",
    description="Price the cart, redeem the coupon and open a payment with the chosen provider"
)
async def create_payment_intent(
    request: IntentRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers)
):
    """Create payment intent"""
    service = CheckoutService(db, providers)
    return await service.create_intent(
        current_user,
        request.provider,
        request.address_id,
        [item.as_entry() for item in request.items],
        request.coupon_code,
    )
