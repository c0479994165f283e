"""Discount rule model"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, Enum, JSON, Text, CheckConstraint, Index
import enum

from .base import BaseModel


class DiscountRuleType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixedAmount"
    BUY_X_GET_Y = "buyXGetY"
    QUANTITY_BASED = "quantityBased"


class DiscountRule(BaseModel):
    """Admin-defined conditional price adjustment"""

    __tablename__ = "discount_rules"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    rule_type = Column(Enum(DiscountRuleType), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # Usage
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)

    # Quantity bounds over the matched items
    min_quantity = Column(Integer, nullable=True)
    max_quantity = Column(Integer, nullable=True)

    # Discount values
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=True)
    buy_quantity = Column(Integer, nullable=True)
    get_free_quantity = Column(Integer, nullable=True)

    # Targeting (lists of product ids / category names)
    free_product_ids = Column(JSON, default=list, nullable=False)
    applicable_categories = Column(JSON, default=list, nullable=False)
    applicable_product_ids = Column(JSON, default=list, nullable=False)
    excluded_product_ids = Column(JSON, default=list, nullable=False)
    eligibility_conditions = Column(JSON, nullable=True)

    __table_args__ = (
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="check_rule_usage_cap"),
        Index("idx_discount_rules_active_priority", "is_active", "priority"),
    )
