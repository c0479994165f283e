"""
Order pricing

``compute_total`` is the pure aggregation of line prices, rule discounts,
the coupon and shipping. ``PricingService`` resolves a cart against the
catalog (authoritative prices, categories, stock, patches) and produces a
quote used both for display and for creating payment intents.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from goalmania.core.config import settings
from goalmania.core.exceptions import (
    InsufficientStockException, NotFoundException, ValidationException
)
from goalmania.models.product import Product, Patch
from goalmania.services.coupon_service import CouponService, CouponValidation
from goalmania.services.discount_engine import AppliedDiscount, CartLine, evaluate
from goalmania.services.discount_rule_service import DiscountRuleService
from goalmania.utils.money import D, ZERO, round_money, to_float

logger = logging.getLogger(__name__)


@dataclass
class PriceBreakdown:
    line_subtotal: Decimal
    discount_total: Decimal
    after_rules: Decimal
    coupon_discount: Decimal
    after_coupon: Decimal
    shipping_total: Decimal
    amount: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {name: to_float(value) for name, value in self.__dict__.items()}


def compute_total(
    items: Iterable[CartLine],
    discounts: Iterable[AppliedDiscount],
    coupon_percentage: Optional[Any] = None,
    shipping: Any = ZERO,
) -> PriceBreakdown:
    """
    lineSubtotal - rule discounts (floored at 0), then the coupon
    percentage, then shipping. Shipping is never discounted.
    """
    line_subtotal = sum((D(item.unit_price) * item.quantity for item in items), ZERO)
    discount_total = sum((D(discount.amount) for discount in discounts), ZERO)
    after_rules = max(line_subtotal - discount_total, ZERO)

    coupon_discount = ZERO
    if coupon_percentage:
        coupon_discount = after_rules * D(coupon_percentage) / 100
    after_coupon = round_money(after_rules - coupon_discount)

    shipping_total = round_money(shipping)
    return PriceBreakdown(
        line_subtotal=round_money(line_subtotal),
        discount_total=round_money(discount_total),
        after_rules=round_money(after_rules),
        coupon_discount=round_money(coupon_discount),
        after_coupon=after_coupon,
        shipping_total=shipping_total,
        amount=round_money(after_coupon + shipping_total),
    )


def patch_object(code: str, patch: Optional[Patch] = None) -> Dict[str, Any]:
    """Expand a patch code into the {id, name, image, price} stored on orders"""
    if patch is None:
        return {"id": code, "name": code, "image": f"/patches/{code}.png", "price": 0.0}
    return {
        "id": patch.code,
        "name": patch.title,
        "image": patch.image_url or f"/patches/{patch.code}.png",
        "price": to_float(patch.price),
    }


def normalize_patches(items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace any remaining string patch codes with patch objects"""
    normalized = []
    for item in items:
        item = dict(item)
        customization = item.get("customization")
        if customization and customization.get("selectedPatches"):
            customization = dict(customization)
            customization["selectedPatches"] = [
                patch_object(patch) if isinstance(patch, str) else patch
                for patch in customization["selectedPatches"]
            ]
            item["customization"] = customization
        normalized.append(item)
    return normalized


def _patch_code(patch: Any) -> str:
    return patch if isinstance(patch, str) else str(patch.get("id"))


@dataclass
class Quote:
    lines: List[CartLine]
    items: List[Dict[str, Any]]
    discounts: List[AppliedDiscount]
    breakdown: PriceBreakdown
    coupon: Optional[CouponValidation] = None
    currency: str = field(default_factory=lambda: settings.DEFAULT_CURRENCY)

    @property
    def coupon_data(self) -> Optional[Dict[str, Any]]:
        if not self.coupon:
            return None
        return {
            "id": str(self.coupon.coupon_id),
            "code": self.coupon.code,
            "discountPercentage": self.coupon.discount_percentage,
            "discountAmount": to_float(self.breakdown.coupon_discount),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "discounts": [discount.to_dict() for discount in self.discounts],
            "coupon": self.coupon_data,
            "currency": self.currency,
            **self.breakdown.to_dict(),
        }


class PricingService:
    """Prices carts against the catalog"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.coupon_service = CouponService(db)
        self.rule_service = DiscountRuleService(db)

    async def _load_products(self, product_ids: Iterable[uuid.UUID]) -> Dict[str, Product]:
        result = await self.db.execute(
            select(Product)
            .where(Product.id.in_(list(product_ids)))
            .execution_options(populate_existing=True)
        )
        return {str(product.id): product for product in result.scalars().all()}

    async def _load_patches(self, codes: Iterable[str]) -> Dict[str, Patch]:
        codes = list(codes)
        if not codes:
            return {}
        result = await self.db.execute(
            select(Patch).where(Patch.code.in_(codes), Patch.is_active.is_(True))
        )
        return {patch.code: patch for patch in result.scalars().all()}

    def _extras_price(self, customization: Dict[str, Any]) -> Decimal:
        extras = ZERO
        if customization.get("includeShorts"):
            extras += D(settings.EXTRA_SHORTS_PRICE)
        if customization.get("includeSocks"):
            extras += D(settings.EXTRA_SOCKS_PRICE)
        if customization.get("isPlayerEdition"):
            extras += D(settings.EXTRA_PLAYER_EDITION_PRICE)
        return extras

    async def resolve_cart(
        self, cart: Sequence[Dict[str, Any]]
    ) -> Tuple[List[CartLine], List[Dict[str, Any]], Decimal]:
        """
        Turn raw cart entries ({product_id, quantity, customization}) into
        priced cart lines and fully expanded order items.

        Raises:
            NotFoundException: unknown or inactive product
            InsufficientStockException: requested quantity above stock
        """
        if not cart:
            raise ValidationException("Cart is empty")

        products = await self._load_products(uuid.UUID(str(entry["product_id"])) for entry in cart)

        codes = {
            _patch_code(patch)
            for entry in cart
            for patch in (entry.get("customization") or {}).get("selectedPatches") or []
        }
        patches = await self._load_patches(codes)

        requested: Dict[str, int] = {}
        for entry in cart:
            key = str(entry["product_id"])
            requested[key] = requested.get(key, 0) + entry["quantity"]

        lines, items = [], []
        for entry in cart:
            product = products.get(str(entry["product_id"]))
            if not product or not product.is_active:
                raise NotFoundException(f"Product {entry['product_id']} not found or inactive")

            if requested[str(product.id)] > product.stock_quantity:
                raise InsufficientStockException(
                    product.name, product.stock_quantity, requested[str(product.id)]
                )

            customization = dict(entry.get("customization") or {})
            # Patch prices always come from the catalog
            selected = [
                patch_object(_patch_code(patch), patches.get(_patch_code(patch)))
                for patch in customization.get("selectedPatches") or []
            ]
            if selected:
                customization["selectedPatches"] = selected

            unit_price = D(product.price) + self._extras_price(customization)
            unit_price += sum((D(patch.get("price")) for patch in selected), ZERO)
            unit_price = round_money(unit_price)

            lines.append(CartLine(
                product_id=str(product.id),
                quantity=entry["quantity"],
                unit_price=unit_price,
                category=product.category,
                name=product.name,
            ))
            item = {
                "productId": str(product.id),
                "name": product.name,
                "price": to_float(unit_price),
                "quantity": entry["quantity"],
                "image": product.image_url,
            }
            if customization:
                item["customization"] = customization
            items.append(item)

        # Charged once per distinct product
        shipping = sum(
            (D(product.shipping_price) for product in products.values() if product.shipping_price),
            ZERO,
        )
        return lines, items, shipping

    async def quote(
        self,
        cart: Sequence[Dict[str, Any]],
        role: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> Quote:
        """Price a cart with the active discount rules and an optional coupon"""
        lines, items, shipping = await self.resolve_cart(cart)

        rules = await self.rule_service.list_active()
        discounts = evaluate(lines, rules)

        coupon = None
        if coupon_code:
            coupon = await self.coupon_service.validate(coupon_code, role)

        breakdown = compute_total(
            lines,
            discounts,
            coupon.discount_percentage if coupon else None,
            shipping,
        )
        logger.debug(
            f"Quote: subtotal={breakdown.line_subtotal} rules={breakdown.discount_total} "
            f"coupon={breakdown.coupon_discount} amount={breakdown.amount}"
        )
        return Quote(lines=lines, items=items, discounts=discounts, breakdown=breakdown, coupon=coupon)
