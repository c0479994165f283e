"""
Payment API routes
"""

from fastapi import APIRouter, Depends, Form, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from goalmania.core.cache import CacheBackend, get_cache
from goalmania.core.database import get_db
from goalmania.core.security import get_current_user
from goalmania.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from .providers import PaymentProviders, get_payment_providers
from .schemas import PaymentConfirmation, PayPalCapture, StripeConfirm, WebhookAck
from .services import PaymentService

router = APIRouter()


@router.post(
    "/webhooks/stripe",
    response_model=WebhookAck,
    summary="Stripe webhook",
    description="Signed Stripe events; duplicate deliveries are acknowledged"
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
    cache: CacheBackend = Depends(get_cache)
):
    """Handle Stripe webhook"""
    payload = await request.body()
    service = PaymentService(db, providers, notifier, cache)
    return await service.handle_stripe_webhook(payload, stripe_signature)


@router.post(
    "/webhooks/mollie",
    response_model=WebhookAck,
    summary="Mollie webhook",
    description="Mollie posts the payment id; the status is fetched from Mollie"
)
async def mollie_webhook(
    id: str = Form(...),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
    cache: CacheBackend = Depends(get_cache)
):
    """Handle Mollie webhook"""
    service = PaymentService(db, providers, notifier, cache)
    return await service.handle_mollie_webhook(id)


@router.post(
    "/paypal/capture",
    response_model=PaymentConfirmation,
    summary="Capture PayPal order",
    description="Capture an approved PayPal order and create the order"
)
async def capture_paypal_order(
    capture: PayPalCapture,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
    cache: CacheBackend = Depends(get_cache)
):
    """Capture PayPal order"""
    service = PaymentService(db, providers, notifier, cache)
    return await service.capture_paypal(capture.order_id, current_user)


@router.post(
    "/stripe/confirm",
    response_model=PaymentConfirmation,
    summary="Confirm Stripe payment",
    description="Verify a client-confirmed PaymentIntent with Stripe and create the order"
)
async def confirm_stripe_payment(
    confirmation: StripeConfirm,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    providers: PaymentProviders = Depends(get_payment_providers),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
    cache: CacheBackend = Depends(get_cache)
):
    """Confirm Stripe payment"""
    service = PaymentService(db, providers, notifier, cache)
    return await service.confirm_stripe(confirmation.payment_intent_id, current_user)
