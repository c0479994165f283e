"""
Payment schemas for request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional
import uuid


class PayPalCapture(BaseModel):
    """Approved PayPal order to capture"""
    order_id: str = Field(..., min_length=1, max_length=255, description="PayPal order id")


class StripeConfirm(BaseModel):
    """PaymentIntent confirmed client side"""
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class PaymentConfirmation(BaseModel):
    status: str
    order_id: Optional[uuid.UUID] = None
    created: bool = False


class WebhookAck(BaseModel):
    received: bool = True
    status: str
    order_id: Optional[uuid.UUID] = None
