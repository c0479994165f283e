"""
Coupon model
"""

from sqlalchemy import Column, String, Integer, Boolean, CheckConstraint, Text, DateTime, Index

from .base import BaseModel


class Coupon(BaseModel):
    """Percentage promo code for premium members"""

    __tablename__ = "coupons"

    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    discount_percentage = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "discount_percentage >= 1 AND discount_percentage <= 100",
            name="check_coupon_percentage_range"
        ),
        CheckConstraint("max_uses IS NULL OR max_uses > 0", name="check_positive_max_uses"),
        Index("idx_coupons_active_expiry", "is_active", "expires_at"),
    )

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and (self.current_uses or 0) >= self.max_uses

