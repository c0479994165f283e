"""
Order schemas for request/response validation
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import uuid

from goalmania.models.order import OrderStatus, PaymentProviderName


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: uuid.UUID
    user_id: uuid.UUID
    items: List[Dict[str, Any]]
    amount: float
    discount_total: float
    currency: str
    status: OrderStatus
    shipping_address: Optional[Dict[str, Any]] = None
    coupon: Optional[Dict[str, Any]] = None
    payment_intent_id: str
    payment_provider: PaymentProviderName
    tracking_code: Optional[str] = None
    refunded: bool
    refunded_at: Optional[datetime] = None
    refund_reference: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class OrderDetailResponse(OrderResponse):
    """Single order with checkout items and UI flags"""
    can_cancel: bool
    invoice_number: str


class OrderListResponse(BaseModel):
    """Paginated order list"""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int


class OrderCancel(BaseModel):
    """Schema for cancelling an order"""
    reason: Optional[str] = Field(None, max_length=500)


class OrderUpdate(BaseModel):
    """Admin status / tracking update"""
    status: Optional[OrderStatus] = None
    tracking_code: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def require_change(self):
        if self.status is None and self.tracking_code is None:
            raise ValueError("Provide a status or a tracking code")
        return self


class RefundRequest(BaseModel):
    """Admin refund; omitting the amount refunds the full payment"""
    amount: Optional[Decimal] = Field(None, gt=0, description="Partial refund amount")


class NotificationResult(BaseModel):
    success: bool
    kind: str
    recipient: str
    error: Optional[str] = None

    class Config:
        from_attributes = True


class OrderActionResponse(BaseModel):
    """Order after an action, with the emails it triggered"""
    order: OrderResponse
    notifications: List[NotificationResult] = []
    warnings: List[str] = []
