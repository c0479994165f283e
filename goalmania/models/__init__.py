"""Models package initialization"""

from .base import Base, BaseModel
from .user import User, UserRole
from .address import Address
from .product import Product, Patch
from .discount_rule import DiscountRule, DiscountRuleType
from .coupon import Coupon
from .order import (
    Order, OrderDetails, OrderStatus, OrderDetailsStatus, PaymentProviderName
)

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserRole",
    "Address",
    "Product",
    "Patch",
    "DiscountRule",
    "DiscountRuleType",
    "Coupon",
    "Order",
    "OrderDetails",
    "OrderStatus",
    "OrderDetailsStatus",
    "PaymentProviderName",
]
