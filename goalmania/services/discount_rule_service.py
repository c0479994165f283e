"""
Discount rule persistence: loading active rules, recording usage and admin CRUD
"""

from typing import Any, Dict, Iterable, List, Tuple
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_

from goalmania.core.cache import make_key
from goalmania.models.discount_rule import DiscountRule, DiscountRuleType
from goalmania.core.exceptions import NotFoundException, ValidationException
from goalmania.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

ACTIVE_RULES_KEY = make_key("discount-rules", "active")

REQUIRED_FIELDS = {
    DiscountRuleType.PERCENTAGE: ("discount_percentage",),
    DiscountRuleType.FIXED_AMOUNT: ("discount_amount",),
    DiscountRuleType.BUY_X_GET_Y: ("buy_quantity", "get_free_quantity"),
}


def validate_rule_fields(data: Dict[str, Any]) -> None:
    """Type-specific field checks shared by create and update"""
    rule_type = DiscountRuleType(data["rule_type"])

    missing = [name for name in REQUIRED_FIELDS.get(rule_type, ()) if data.get(name) is None]
    if missing:
        raise ValidationException(
            f"{rule_type.value} rules require {', '.join(missing)}",
            details=[{"field": name, "message": "required"} for name in missing],
        )

    if rule_type == DiscountRuleType.QUANTITY_BASED:
        if data.get("min_quantity") is None and data.get("max_quantity") is None:
            raise ValidationException("quantityBased rules require min_quantity or max_quantity")
        if data.get("discount_percentage") is None and data.get("discount_amount") is None:
            raise ValidationException("quantityBased rules require discount_percentage or discount_amount")

    low, high = data.get("min_quantity"), data.get("max_quantity")
    if low is not None and high is not None and low > high:
        raise ValidationException("min_quantity cannot exceed max_quantity")


class DiscountRuleService:
    """Database side of the discount engine"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self) -> List[DiscountRule]:
        """Rules that are active, unexpired and below their usage cap"""
        result = await self.db.execute(
            select(DiscountRule)
            .where(
                and_(
                    DiscountRule.is_active.is_(True),
                    or_(DiscountRule.expires_at.is_(None), DiscountRule.expires_at > utcnow()),
                    or_(DiscountRule.max_uses.is_(None), DiscountRule.current_uses < DiscountRule.max_uses),
                )
            )
            .order_by(DiscountRule.priority.desc(), DiscountRule.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def exhausted(self, rule_ids: Iterable[str]) -> List[str]:
        """Ids among ``rule_ids`` whose usage cap is now reached"""
        ids = [uuid.UUID(str(rule_id)) for rule_id in rule_ids]
        if not ids:
            return []
        result = await self.db.execute(
            select(DiscountRule.id).where(
                and_(
                    DiscountRule.id.in_(ids),
                    DiscountRule.max_uses.is_not(None),
                    DiscountRule.current_uses >= DiscountRule.max_uses,
                )
            )
        )
        return [str(rule_id) for rule_id in result.scalars().all()]

    async def list_all(self) -> List[DiscountRule]:
        result = await self.db.execute(
            select(DiscountRule).order_by(DiscountRule.priority.desc(), DiscountRule.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, rule_id: uuid.UUID) -> DiscountRule:
        result = await self.db.execute(
            select(DiscountRule)
            .where(DiscountRule.id == rule_id)
            .execution_options(populate_existing=True)
        )
        rule = result.scalar_one_or_none()
        if not rule:
            raise NotFoundException("Discount rule not found")
        return rule

    async def record_usage(self, rule_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Increment current_uses for each rule that contributed a discount.

        A rule capped by a concurrent checkout is skipped, not retried.
        Returns (recorded, skipped).
        """
        recorded, skipped = [], []
        for rule_id in rule_ids:
            result = await self.db.execute(
                update(DiscountRule)
                .where(
                    and_(
                        DiscountRule.id == uuid.UUID(str(rule_id)),
                        or_(DiscountRule.max_uses.is_(None), DiscountRule.current_uses < DiscountRule.max_uses),
                    )
                )
                .values(current_uses=DiscountRule.current_uses + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                recorded.append(str(rule_id))
            else:
                logger.warning(f"Discount rule {rule_id} reached its usage cap, usage not recorded")
                skipped.append(str(rule_id))
        return recorded, skipped

    async def create(self, data: Dict[str, Any]) -> DiscountRule:
        data["rule_type"] = DiscountRuleType(data["rule_type"])
        validate_rule_fields(data)
        if data.get("expires_at") is not None:
            data["expires_at"] = as_utc(data["expires_at"])
            if data["expires_at"] <= utcnow():
                raise ValidationException("Expiry date must be in the future")

        rule = DiscountRule(**data, current_uses=0)
        self.db.add(rule)
        await self.db.flush()
        logger.info(f"Discount rule '{rule.name}' created ({DiscountRuleType(rule.rule_type).value})")
        return rule

    async def update(self, rule_id: uuid.UUID, data: Dict[str, Any]) -> DiscountRule:
        rule = await self.get(rule_id)
        if data.get("rule_type") is not None:
            data["rule_type"] = DiscountRuleType(data["rule_type"])
        merged = {
            column.name: getattr(rule, column.name)
            for column in DiscountRule.__table__.columns
        }
        merged.update(data)
        validate_rule_fields(merged)

        if data.get("expires_at") is not None:
            data["expires_at"] = as_utc(data["expires_at"])
            if data["expires_at"] <= utcnow():
                raise ValidationException("Expiry date must be in the future")

        for key, value in data.items():
            setattr(rule, key, value)
        await self.db.flush()
        return rule

    async def delete(self, rule_id: uuid.UUID) -> None:
        rule = await self.get(rule_id)
        await self.db.delete(rule)
        await self.db.flush()
        logger.info(f"Discount rule '{rule.name}' deleted")
