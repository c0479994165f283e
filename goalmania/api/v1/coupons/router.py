"""
Coupon API routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from goalmania.core.database import get_db
from goalmania.core.security import get_current_user, require_coupon_holder
from goalmania.services.coupon_service import CouponService
from .schemas import CouponApply, CouponResponse, CouponValidate, CouponValidationResponse

router = APIRouter()


@router.post(
    "/validate",
    response_model=CouponValidationResponse,
    summary="Validate coupon",
    description="Check a coupon code; coupons are reserved to premium members and admins"
)
async def validate_coupon(
    request: CouponValidate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Validate coupon"""
    service = CouponService(db)
    return await service.validate(request.code, current_user.get("role"))


@router.post(
    "/apply",
    response_model=CouponResponse,
    summary="Redeem coupon",
    description="Record one use of a coupon"
)
async def apply_coupon(
    request: CouponApply,
    current_user: dict = Depends(require_coupon_holder),
    db: AsyncSession = Depends(get_db)
):
    """Apply coupon"""
    service = CouponService(db)
    return await service.apply(request.coupon_id)
