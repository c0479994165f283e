"""
Discount rule schemas for request/response validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
import uuid

from goalmania.models.discount_rule import DiscountRuleType
from goalmania.api.v1.checkout.schemas import CartItem

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class TimeRestrictions(BaseModel):
    startTime: Optional[str] = Field(None, pattern=TIME_PATTERN)
    endTime: Optional[str] = Field(None, pattern=TIME_PATTERN)
    daysOfWeek: List[int] = Field(default_factory=list, description="0 = Sunday")

    @field_validator("daysOfWeek")
    @classmethod
    def valid_days(cls, days: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in days):
            raise ValueError("daysOfWeek values must be between 0 (Sunday) and 6")
        return days


class EligibilityConditions(BaseModel):
    """Cart-level conditions; stored as JSON with these exact keys"""
    minCartValue: Optional[float] = Field(None, ge=0)
    requiredCategories: List[str] = []
    excludedCategories: List[str] = []
    minCategoryItems: Optional[int] = Field(None, ge=0)
    maxCategoryItems: Optional[int] = Field(None, ge=0)
    timeRestrictions: Optional[TimeRestrictions] = None


class DiscountRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    rule_type: DiscountRuleType
    is_active: bool = True
    priority: int = 0
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    min_quantity: Optional[int] = Field(None, ge=0)
    max_quantity: Optional[int] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    discount_amount: Optional[float] = Field(None, gt=0)
    buy_quantity: Optional[int] = Field(None, gt=0)
    get_free_quantity: Optional[int] = Field(None, gt=0)
    free_product_ids: List[str] = []
    applicable_categories: List[str] = []
    applicable_product_ids: List[str] = []
    excluded_product_ids: List[str] = []
    eligibility_conditions: Optional[EligibilityConditions] = None


class DiscountRuleCreate(DiscountRuleBase):
    """Schema for creating a discount rule"""


class DiscountRuleUpdate(BaseModel):
    """Partial update; type-specific checks run on the merged rule"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    rule_type: Optional[DiscountRuleType] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    min_quantity: Optional[int] = Field(None, ge=0)
    max_quantity: Optional[int] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    discount_amount: Optional[float] = Field(None, gt=0)
    buy_quantity: Optional[int] = Field(None, gt=0)
    get_free_quantity: Optional[int] = Field(None, gt=0)
    free_product_ids: Optional[List[str]] = None
    applicable_categories: Optional[List[str]] = None
    applicable_product_ids: Optional[List[str]] = None
    excluded_product_ids: Optional[List[str]] = None
    eligibility_conditions: Optional[EligibilityConditions] = None


class DiscountRuleResponse(DiscountRuleBase):
    id: uuid.UUID
    current_uses: int
    eligibility_conditions: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class CartRequest(BaseModel):
    items: List[CartItem] = Field(..., min_length=1)


class EvaluationResponse(BaseModel):
    discounts: List[Dict[str, Any]]
    line_subtotal: float
    discount_total: float
    after_rules: float


class RuleAnalysisResponse(BaseModel):
    rule_id: str
    rule_name: str
    rule_type: str
    description: Optional[str] = None
    is_applicable: bool
    reason: str
    potential_discount: float
    requirements: Dict[str, Any]
    applied_to_items: List[str]
    eligibility_message: str = ""
    how_to_qualify: str = ""

    class Config:
        from_attributes = True
