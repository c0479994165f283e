"""Order model and the per-intent order details side table"""

from sqlalchemy import Column, String, Numeric, Enum, ForeignKey, Index, Text, DateTime, Boolean, JSON, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentProviderName(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    MOLLIE = "mollie"


class OrderDetailsStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    REJECTED = "rejected"


class Order(BaseModel):
    """Persisted order; amount is authoritative once written"""

    __tablename__ = "orders"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Items are stored with patches already expanded
    items = Column(JSON, nullable=False, default=list)
    amount = Column(Numeric(10, 2), nullable=False)
    discount_total = Column(Numeric(10, 2), default=0, nullable=False)
    currency = Column(String(3), default="eur", nullable=False)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    shipping_address = Column(JSON, nullable=True)
    coupon = Column(JSON, nullable=True)

    # Payment
    payment_intent_id = Column(String(255), unique=True, nullable=False)
    payment_provider = Column(Enum(PaymentProviderName), nullable=False)
    provider_reference = Column(String(255), nullable=True)

    # Fulfilment
    tracking_code = Column(String(100), nullable=True)

    # Refund (orthogonal to status)
    refunded = Column(Boolean, default=False, nullable=False)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_reference = Column(String(255), nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Uuid(as_uuid=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    user = relationship("User", lazy="selectin")

    __table_args__ = (
        Index("idx_orders_user_created", "user_id", "created_at"),
    )


class OrderDetails(BaseModel):
    """Fully resolved checkout snapshot keyed by the provider intent id"""

    __tablename__ = "order_details"

    payment_intent_id = Column(String(255), unique=True, nullable=False, index=True)
    provider = Column(Enum(PaymentProviderName), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    address_id = Column(Uuid(as_uuid=True), ForeignKey("addresses.id"), nullable=True)

    full_items = Column(JSON, nullable=False, default=list)
    coupon_data = Column(JSON, nullable=True)
    applied_rules = Column(JSON, nullable=False, default=list)
    amount = Column(Numeric(10, 2), nullable=False)
    discount_total = Column(Numeric(10, 2), default=0, nullable=False)
    currency = Column(String(3), default="eur", nullable=False)
    status = Column(Enum(OrderDetailsStatus), default=OrderDetailsStatus.PENDING, nullable=False, index=True)
    failure_reason = Column(Text, nullable=True)
