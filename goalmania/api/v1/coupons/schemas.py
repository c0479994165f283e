"""
Coupon schemas for request/response validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
import uuid


class CouponValidate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)


class CouponApply(BaseModel):
    coupon_id: uuid.UUID


class CouponValidationResponse(BaseModel):
    valid: bool
    discount_percentage: int
    coupon_id: uuid.UUID
    code: str

    class Config:
        from_attributes = True


class CouponCreate(BaseModel):
    """Schema for creating a coupon; codes are stored uppercase"""
    code: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = Field(None, max_length=500)
    discount_percentage: int = Field(..., ge=1, le=100)
    expires_at: datetime
    is_active: bool = True
    max_uses: Optional[int] = Field(None, gt=0)


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = Field(None, max_length=500)
    discount_percentage: Optional[int] = Field(None, ge=1, le=100)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    max_uses: Optional[int] = Field(None, gt=0)

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    description: Optional[str] = None
    discount_percentage: int
    expires_at: datetime
    is_active: bool
    max_uses: Optional[int] = None
    current_uses: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
