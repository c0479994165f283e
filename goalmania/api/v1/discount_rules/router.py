"""
Discount rule API routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from goalmania.core.cache import CacheBackend, get_cache
from goalmania.core.database import get_db
from goalmania.services.discount_engine import analyze, evaluate
from goalmania.services.discount_rule_service import ACTIVE_RULES_KEY, DiscountRuleService
from goalmania.services.pricing import PricingService, compute_total
from .schemas import CartRequest, DiscountRuleResponse, EvaluationResponse, RuleAnalysisResponse

router = APIRouter()


@router.get(
    "/",
    response_model=List[DiscountRuleResponse],
    summary="Active discount rules",
    description="Active, unexpired rules below their usage cap, highest priority first"
)
async def list_active_rules(
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache)
):
    """List active discount rules"""
    cached = await cache.get(ACTIVE_RULES_KEY)
    if cached is not None:
        return cached

    rules = await DiscountRuleService(db).list_active()
    payload = [
        DiscountRuleResponse.model_validate(rule).model_dump(mode="json")
        for rule in rules
    ]
    await cache.set(ACTIVE_RULES_KEY, payload)
    return payload


@router.post(
    "/evaluate",
    response_model=EvaluationResponse,
    summary="Evaluate cart",
    description="Apply the active discount rules to a cart priced from the catalog"
)
async def evaluate_cart(
    request: CartRequest,
    db: AsyncSession = Depends(get_db)
):
    """Evaluate discount rules"""
    lines, _, _ = await PricingService(db).resolve_cart([item.as_entry() for item in request.items])
    rules = await DiscountRuleService(db).list_active()
    discounts = evaluate(lines, rules)
    breakdown = compute_total(lines, discounts)
    return {
        "discounts": [discount.to_dict() for discount in discounts],
        "line_subtotal": breakdown.line_subtotal,
        "discount_total": breakdown.discount_total,
        "after_rules": breakdown.after_rules,
    }


@router.post(
    "/check-cart",
    response_model=List[RuleAnalysisResponse],
    summary="Check cart against rules",
    description="Explain for every active rule whether it applies and how to qualify"
)
async def check_cart(
    request: CartRequest,
    db: AsyncSession = Depends(get_db)
):
    """Analyze cart"""
    lines, _, _ = await PricingService(db).resolve_cart([item.as_entry() for item in request.items])
    rules = await DiscountRuleService(db).list_active()
    return analyze(lines, rules)
