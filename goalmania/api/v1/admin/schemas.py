"""Admin request/response schemas"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional


class CacheRevalidate(BaseModel):
    """Invalidate one cached key or every key under a prefix (tag)"""
    key: Optional[str] = Field(None, max_length=500)
    prefix: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def one_target(self):
        if not self.key and not self.prefix:
            raise ValueError("Provide a key or a prefix")
        return self


class CacheRevalidateResponse(BaseModel):
    revalidated: bool
    removed: int


class ApplePayDomain(BaseModel):
    domain: str = Field(..., min_length=3, max_length=255, pattern=r"^[A-Za-z0-9.-]+$")


class ApplePayDomainResponse(BaseModel):
    success: bool
    domain: str
