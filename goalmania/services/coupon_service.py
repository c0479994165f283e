"""
Coupon service for validating and redeeming premium coupons
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import IntegrityError

from goalmania.models.coupon import Coupon
from goalmania.core.exceptions import (
    NotFoundException, ForbiddenException, UsageExceededException,
    DuplicateResourceException, ValidationException
)
from goalmania.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

COUPON_ROLES = ("premium", "admin")


@dataclass
class CouponValidation:
    valid: bool
    discount_percentage: int
    coupon_id: uuid.UUID
    code: str


class CouponService:
    """
    Service for coupon operations
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _find_active(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon)
            .where(
                and_(
                    Coupon.code == code.strip().upper(),
                    Coupon.is_active.is_(True),
                    Coupon.expires_at > utcnow()
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def validate(self, code: str, role: Optional[str]) -> CouponValidation:
        """
        Validate a coupon code for a user role

        Raises:
            ForbiddenException: role is neither premium nor admin
            NotFoundException: no active, unexpired coupon with this code
            UsageExceededException: usage cap reached
        """
        if role not in COUPON_ROLES:
            raise ForbiddenException("Coupons are reserved to premium members")

        coupon = await self._find_active(code)
        if not coupon:
            raise NotFoundException("Invalid or expired coupon code")

        if coupon.is_exhausted:
            raise UsageExceededException("Coupon usage limit exceeded")

        return CouponValidation(
            valid=True,
            discount_percentage=coupon.discount_percentage,
            coupon_id=coupon.id,
            code=coupon.code,
        )

    async def apply(self, coupon_id: uuid.UUID) -> Coupon:
        """
        Redeem a coupon once

        The active/expiry/usage checks and the increment run as a single
        conditional UPDATE, so concurrent checkouts cannot push
        current_uses past max_uses.
        """
        result = await self.db.execute(
            update(Coupon)
            .where(
                and_(
                    Coupon.id == coupon_id,
                    Coupon.is_active.is_(True),
                    Coupon.expires_at > utcnow(),
                    or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses)
                )
            )
            .values(current_uses=Coupon.current_uses + 1)
            .execution_options(synchronize_session=False)
        )

        coupon = await self.get(coupon_id)
        if result.rowcount == 0:
            if coupon.is_active and as_utc(coupon.expires_at) > utcnow() and coupon.is_exhausted:
                raise UsageExceededException("Coupon is no longer available")
            raise NotFoundException("Invalid or expired coupon code")

        logger.info(f"Coupon {coupon.code} redeemed ({coupon.current_uses}/{coupon.max_uses or '∞'})")
        return coupon

    async def get(self, coupon_id: uuid.UUID) -> Coupon:
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        if not coupon:
            raise NotFoundException("Coupon not found")
        return coupon

    async def list_coupons(self) -> List[Coupon]:
        result = await self.db.execute(select(Coupon).order_by(Coupon.created_at.desc()))
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> Coupon:
        """Create a coupon; codes are unique case-insensitively"""
        code = data["code"].strip().upper()
        data["expires_at"] = as_utc(data["expires_at"])
        if data["expires_at"] <= utcnow():
            raise ValidationException("Expiry date must be in the future")

        existing = await self.db.execute(select(Coupon.id).where(Coupon.code == code))
        if existing.scalar_one_or_none():
            raise DuplicateResourceException("Coupon", "code", code)

        coupon = Coupon(**{**data, "code": code, "current_uses": 0})
        try:
            async with self.db.begin_nested():
                self.db.add(coupon)
        except IntegrityError:
            raise DuplicateResourceException("Coupon", "code", code)

        logger.info(f"Coupon {code} created")
        return coupon

    async def update(self, coupon_id: uuid.UUID, data: Dict[str, Any]) -> Coupon:
        coupon = await self.get(coupon_id)

        if "code" in data and data["code"]:
            code = data["code"].strip().upper()
            if code != coupon.code:
                clash = await self.db.execute(select(Coupon.id).where(Coupon.code == code))
                if clash.scalar_one_or_none():
                    raise DuplicateResourceException("Coupon", "code", code)
            data["code"] = code

        if data.get("expires_at") is not None:
            data["expires_at"] = as_utc(data["expires_at"])
            if data["expires_at"] <= utcnow():
                raise ValidationException("Expiry date must be in the future")

        for key, value in data.items():
            setattr(coupon, key, value)

        await self.db.flush()
        return coupon

    async def delete(self, coupon_id: uuid.UUID) -> None:
        coupon = await self.get(coupon_id)
        await self.db.delete(coupon)
        await self.db.flush()
        logger.info(f"Coupon {coupon.code} deleted")
