"""
Discount rule evaluation

Pure functions over cart lines and rule objects. Rules are any objects
exposing the DiscountRule attributes, so the evaluator runs on ORM rows
and on transient instances alike.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo
import logging

from goalmania.core.config import settings
from goalmania.models.discount_rule import DiscountRuleType
from goalmania.utils.helpers import as_utc, utcnow
from goalmania.utils.money import D, ZERO, round_money, to_float

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass
class CartLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    category: Optional[str] = None
    name: str = ""

    @property
    def subtotal(self) -> Decimal:
        return D(self.unit_price) * self.quantity


@dataclass
class AppliedDiscount:
    rule_id: str
    rule_name: str
    rule_type: str
    amount: Decimal
    description: Optional[str] = None
    discount_percentage: Optional[float] = None
    applied_to_items: List[str] = field(default_factory=list)
    free_items: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["amount"] = to_float(self.amount)
        return data


@dataclass
class Eligibility:
    is_eligible: bool
    reason: str = ""
    message: str = ""
    how_to_qualify: str = ""


@dataclass
class RuleAnalysis:
    rule_id: str
    rule_name: str
    rule_type: str
    description: Optional[str]
    is_applicable: bool
    reason: str
    potential_discount: Decimal
    requirements: Dict[str, Any]
    applied_to_items: List[str]
    eligibility_message: str = ""
    how_to_qualify: str = ""


def _rule_type(rule) -> DiscountRuleType:
    return DiscountRuleType(rule.rule_type)


def _ids(values: Optional[Iterable[Any]]) -> List[str]:
    return [str(value) for value in (values or [])]


def _categories(values: Optional[Iterable[str]]) -> set:
    return {value.lower() for value in (values or [])}


def _targets(rule) -> str:
    return " or ".join(rule.applicable_categories or []) or "applicable"


def is_available(rule, now: Optional[datetime] = None) -> bool:
    """Active, not expired and below its usage cap"""
    now = now or utcnow()
    if not rule.is_active:
        return False
    if rule.expires_at is not None and as_utc(rule.expires_at) <= now:
        return False
    if rule.max_uses is not None and (rule.current_uses or 0) >= rule.max_uses:
        return False
    return True


def sort_rules(rules: Iterable[Any]) -> List[Any]:
    """Priority descending, most recently created first on ties"""
    return sorted(
        rules,
        key=lambda rule: (rule.priority or 0, as_utc(rule.created_at) or _EPOCH),
        reverse=True,
    )


def item_applies(rule, line: CartLine) -> bool:
    """Whether a single cart line is targeted by the rule"""
    product_id = str(line.product_id)
    if product_id in _ids(rule.excluded_product_ids):
        return False
    if rule.applicable_product_ids:
        return product_id in _ids(rule.applicable_product_ids)
    if rule.applicable_categories:
        return bool(line.category) and line.category.lower() in _categories(rule.applicable_categories)
    return True


def matching_lines(rule, lines: Sequence[CartLine]) -> List[CartLine]:
    return [line for line in lines if item_applies(rule, line)]


def _local_now(now: datetime) -> datetime:
    return now.astimezone(ZoneInfo(settings.STORE_TIMEZONE))


def check_eligibility(rule, lines: Sequence[CartLine], now: Optional[datetime] = None) -> Eligibility:
    """Cart-wide conditions a rule may carry in ``eligibility_conditions``"""
    conditions = rule.eligibility_conditions or {}
    if not conditions:
        return Eligibility(True)

    total_value = sum((line.subtotal for line in lines), ZERO)
    required = _categories(conditions.get("requiredCategories"))
    required_label = " or ".join(conditions.get("requiredCategories") or [])

    min_cart_value = conditions.get("minCartValue")
    if min_cart_value and total_value < D(min_cart_value):
        needed = round_money(D(min_cart_value) - total_value)
        return Eligibility(
            False,
            "Cart value too low",
            f"Your cart value is €{round_money(total_value)}, but you need at least €{round_money(min_cart_value)}",
            f"Add items worth €{needed} more to qualify for this discount",
        )

    category_quantity = sum(
        line.quantity for line in lines if line.category and line.category.lower() in required
    )

    min_category_items = conditions.get("minCategoryItems")
    if min_category_items and category_quantity < min_category_items:
        needed = min_category_items - category_quantity
        return Eligibility(
            False,
            "Not enough items from required categories",
            f"You have {category_quantity} items from required categories, but need {min_category_items}",
            f"Add {needed} more items from {required_label} to qualify",
        )

    max_category_items = conditions.get("maxCategoryItems")
    if max_category_items and category_quantity > max_category_items:
        excess = category_quantity - max_category_items
        return Eligibility(
            False,
            "Too many items from required categories",
            f"You have {category_quantity} items from required categories, but maximum is {max_category_items}",
            f"Remove {excess} items from {required_label} to qualify",
        )

    if required and not any(line.category and line.category.lower() in required for line in lines):
        return Eligibility(
            False,
            "Missing required categories",
            f"This discount requires items from {required_label}",
            f"Add items from {required_label} to qualify",
        )

    excluded = _categories(conditions.get("excludedCategories"))
    if excluded and any(line.category and line.category.lower() in excluded for line in lines):
        excluded_label = " or ".join(conditions.get("excludedCategories") or [])
        return Eligibility(
            False,
            "Excluded categories present",
            f"This discount cannot be used with items from {excluded_label}",
            f"Remove items from {excluded_label} to qualify",
        )

    window = conditions.get("timeRestrictions") or {}
    if window:
        local = _local_now(now or utcnow())
        days = window.get("daysOfWeek") or []
        # 0 is Sunday
        if days and local.isoweekday() % 7 not in days:
            allowed = ", ".join(_DAY_NAMES[day] for day in days)
            return Eligibility(
                False,
                "Not available today",
                f"This discount is only available on {allowed}",
                f"Come back on {allowed} to use this discount",
            )
        start, end = window.get("startTime"), window.get("endTime")
        current = local.strftime("%H:%M")
        if start and end and not (start.zfill(5) <= current <= end.zfill(5)):
            return Eligibility(
                False,
                "Outside time window",
                f"This discount is only available between {start} and {end}",
                f"Come back between {start} and {end} to use this discount",
            )

    return Eligibility(True)


def _quantity_shortfall(rule, quantity: int) -> Optional[Tuple[str, str]]:
    if rule.min_quantity and quantity < rule.min_quantity:
        needed = rule.min_quantity - quantity
        return (
            f"Need {needed} more applicable item(s)",
            f"Add {needed} more {_targets(rule)} items to your cart",
        )
    if rule.max_quantity and quantity > rule.max_quantity:
        excess = quantity - rule.max_quantity
        return (
            f"Too many applicable items (max: {rule.max_quantity})",
            f"Remove {excess} {_targets(rule)} items from your cart",
        )
    return None


def _free_units(rule, matched: Sequence[CartLine], lines: Sequence[CartLine]) -> List[Dict[str, Any]]:
    """Units made free by a buy-X-get-Y rule, cheapest first unless free products are named"""
    buy = rule.buy_quantity or 0
    get = rule.get_free_quantity or 0
    if buy <= 0 or get <= 0:
        return []

    matched_quantity = sum(line.quantity for line in matched)
    remaining = (matched_quantity // buy) * get
    if remaining <= 0:
        return []

    free_ids = _ids(rule.free_product_ids)
    if free_ids:
        pool = sorted(
            (line for line in lines if str(line.product_id) in free_ids),
            key=lambda line: free_ids.index(str(line.product_id)),
        )
    else:
        pool = sorted(matched, key=lambda line: D(line.unit_price))

    free_items = []
    for line in pool:
        if remaining <= 0:
            break
        units = min(line.quantity, remaining)
        remaining -= units
        free_items.append({
            "productId": str(line.product_id),
            "name": line.name,
            "quantity": units,
            "unitPrice": to_float(line.unit_price),
        })
    return free_items


def rule_discount(rule, matched: Sequence[CartLine], lines: Sequence[CartLine]) -> Tuple[Decimal, List[Dict[str, Any]]]:
    """Raw discount amount produced by one rule over its matched lines"""
    matched_subtotal = sum((line.subtotal for line in matched), ZERO)
    rule_type = _rule_type(rule)

    if rule_type == DiscountRuleType.PERCENTAGE:
        return matched_subtotal * D(rule.discount_percentage) / 100, []

    if rule_type == DiscountRuleType.FIXED_AMOUNT:
        return min(D(rule.discount_amount), matched_subtotal), []

    if rule_type == DiscountRuleType.BUY_X_GET_Y:
        free_items = _free_units(rule, matched, lines)
        amount = sum((D(item["unitPrice"]) * item["quantity"] for item in free_items), ZERO)
        return amount, free_items

    if rule_type == DiscountRuleType.QUANTITY_BASED:
        if rule.discount_percentage:
            return matched_subtotal * D(rule.discount_percentage) / 100, []
        if rule.discount_amount:
            return min(D(rule.discount_amount), matched_subtotal), []

    return ZERO, []


def evaluate(
    cart_items: Sequence[CartLine],
    rules: Iterable[Any],
    now: Optional[datetime] = None,
) -> List[AppliedDiscount]:
    """
    Apply every available rule to the cart, in priority order.

    Rules stack: a line targeted by several rules is discounted by each of
    them. Rules that match nothing, fail their conditions or produce a zero
    discount are left out of the result.
    """
    now = now or utcnow()
    applied: List[AppliedDiscount] = []

    for rule in sort_rules(rule for rule in rules if is_available(rule, now)):
        matched = matching_lines(rule, cart_items)
        if not matched:
            continue
        if not check_eligibility(rule, cart_items, now).is_eligible:
            continue
        if _quantity_shortfall(rule, sum(line.quantity for line in matched)):
            continue

        amount, free_items = rule_discount(rule, matched, cart_items)
        amount = round_money(amount)
        if amount <= ZERO:
            continue

        applied.append(AppliedDiscount(
            rule_id=str(rule.id),
            rule_name=rule.name,
            rule_type=_rule_type(rule).value,
            amount=amount,
            description=rule.description,
            discount_percentage=float(rule.discount_percentage) if rule.discount_percentage is not None else None,
            applied_to_items=[str(line.product_id) for line in matched],
            free_items=free_items,
        ))

    return applied


def analyze(
    cart_items: Sequence[CartLine],
    rules: Iterable[Any],
    now: Optional[datetime] = None,
) -> List[RuleAnalysis]:
    """Explain, per available rule, whether the cart qualifies and how it could"""
    now = now or utcnow()
    analyses = []

    for rule in sort_rules(rule for rule in rules if is_available(rule, now)):
        matched = matching_lines(rule, cart_items)
        quantity = sum(line.quantity for line in matched)
        value = sum((line.subtotal for line in matched), ZERO)
        rule_type = _rule_type(rule)
        requirements = {
            "minQuantity": rule.min_quantity,
            "maxQuantity": rule.max_quantity,
            "buyQuantity": rule.buy_quantity,
            "getFreeQuantity": rule.get_free_quantity,
            "currentQuantity": quantity,
            "currentValue": to_float(value),
        }
        analysis = RuleAnalysis(
            rule_id=str(rule.id),
            rule_name=rule.name,
            rule_type=rule_type.value,
            description=rule.description,
            is_applicable=False,
            reason="",
            potential_discount=ZERO,
            requirements=requirements,
            applied_to_items=[str(line.product_id) for line in matched],
        )
        analyses.append(analysis)

        eligibility = check_eligibility(rule, cart_items, now)
        if not eligibility.is_eligible:
            analysis.reason = eligibility.reason
            analysis.eligibility_message = eligibility.message
            analysis.how_to_qualify = eligibility.how_to_qualify
            continue

        if not matched:
            analysis.reason = "No applicable items in cart"
            analysis.how_to_qualify = f"Add {_targets(rule)} items to qualify"
            continue

        if rule_type == DiscountRuleType.BUY_X_GET_Y and rule.buy_quantity and quantity < rule.buy_quantity:
            needed = rule.buy_quantity - quantity
            analysis.reason = f"Need {needed} more applicable item(s)"
            analysis.how_to_qualify = (
                f"Add {needed} more {_targets(rule)} items to get {rule.get_free_quantity} free"
            )
            continue

        shortfall = _quantity_shortfall(rule, quantity)
        if shortfall:
            analysis.reason, analysis.how_to_qualify = shortfall
            continue

        amount, _ = rule_discount(rule, matched, cart_items)
        analysis.potential_discount = round_money(amount)
        analysis.is_applicable = analysis.potential_discount > ZERO
        analysis.reason = "Ready to apply" if analysis.is_applicable else "Discount amount is zero"

    return analyses
