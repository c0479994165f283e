"""
Checkout schemas
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Union
import uuid

from goalmania.models.order import PaymentProviderName


class JerseyCustomization(BaseModel):
    """Name/number printing, patches and kit extras"""
    name: Optional[str] = Field(None, max_length=30)
    number: Optional[str] = Field(None, max_length=3)
    selectedPatches: List[Union[str, Dict[str, Any]]] = []
    includeShorts: bool = False
    includeSocks: bool = False
    isPlayerEdition: bool = False
    size: Optional[str] = Field(None, max_length=10)


class CartItem(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., gt=0, le=100)
    customization: Optional[JerseyCustomization] = None

    def as_entry(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "customization": self.customization.model_dump(exclude_defaults=True) if self.customization else None,
        }


class QuoteRequest(BaseModel):
    items: List[CartItem] = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=50)

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() or None if value else None


class IntentRequest(QuoteRequest):
    provider: PaymentProviderName
    address_id: uuid.UUID


class AppliedDiscountResponse(BaseModel):
    rule_id: str
    rule_name: str
    rule_type: str
    amount: float
    description: Optional[str] = None
    discount_percentage: Optional[float] = None
    applied_to_items: List[str] = []
    free_items: List[Dict[str, Any]] = []


class QuoteResponse(BaseModel):
    items: List[Dict[str, Any]]
    discounts: List[AppliedDiscountResponse]
    coupon: Optional[Dict[str, Any]] = None
    currency: str
    line_subtotal: float
    discount_total: float
    after_rules: float
    coupon_discount: float
    after_coupon: float
    shipping_total: float
    amount: float


class IntentResponse(BaseModel):
    provider: PaymentProviderName
    payment_intent_id: str
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    quote: QuoteResponse

    class Config:
        use_enum_values = True
