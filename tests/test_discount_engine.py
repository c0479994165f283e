"""Discount rule evaluation and cart analysis"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from goalmania.models import DiscountRuleType
from goalmania.services.discount_engine import analyze, check_eligibility, evaluate
from goalmania.services.pricing import compute_total
from goalmania.utils.helpers import utcnow
from tests.factories import line, make_rule

# Wednesday 5 June 2024, 12:00 in Rome
WEDNESDAY_NOON = datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc)


def test_rules_apply_in_priority_order_and_stack():
    low = make_rule(name="Low", priority=1, discount_percentage=Decimal("5"))
    high = make_rule(name="High", priority=5, discount_percentage=Decimal("10"))

    discounts = evaluate([line("p1", 1, "100.00")], [low, high])

    assert [d.rule_name for d in discounts] == ["High", "Low"]
    assert [d.amount for d in discounts] == [Decimal("10.00"), Decimal("5.00")]


def test_equal_priority_prefers_newest_rule():
    older = make_rule(name="Older", discount_percentage=Decimal("5"), created_at=utcnow() - timedelta(days=2))
    newer = make_rule(name="Newer", discount_percentage=Decimal("5"), created_at=utcnow())

    discounts = evaluate([line("p1", 1, "40.00")], [older, newer])

    assert [d.rule_name for d in discounts] == ["Newer", "Older"]


def test_excluded_product_is_skipped_per_item():
    rule = make_rule(
        discount_percentage=Decimal("10"),
        applicable_categories=["Serie A"],
        excluded_product_ids=["p2"],
    )

    discounts = evaluate([line("p1", 1, "100.00"), line("p2", 1, "80.00")], [rule])

    assert len(discounts) == 1
    assert discounts[0].amount == Decimal("10.00")
    assert discounts[0].applied_to_items == ["p1"]


def test_category_match_is_case_insensitive():
    rule = make_rule(discount_percentage=Decimal("20"), applicable_categories=["premier league"])

    discounts = evaluate(
        [line("p1", 2, "50.00", category="Premier League"), line("p2", 1, "50.00", category="Serie A")],
        [rule],
    )

    assert discounts[0].amount == Decimal("20.00")


def test_fixed_amount_is_capped_by_matched_subtotal():
    rule = make_rule(rule_type=DiscountRuleType.FIXED_AMOUNT, discount_amount=Decimal("30"))

    discounts = evaluate([line("p1", 1, "25.00")], [rule])

    assert discounts[0].amount == Decimal("25.00")


def test_quantity_based_requires_minimum_quantity():
    rule = make_rule(
        rule_type=DiscountRuleType.QUANTITY_BASED,
        min_quantity=3,
        discount_percentage=Decimal("15"),
    )

    assert evaluate([line("p1", 2, "60.00")], [rule]) == []

    discounts = evaluate([line("p1", 3, "60.00")], [rule])
    assert discounts[0].amount == Decimal("27.00")


def test_quantity_based_respects_maximum_quantity():
    rule = make_rule(
        rule_type=DiscountRuleType.QUANTITY_BASED,
        max_quantity=2,
        discount_amount=Decimal("10"),
    )

    assert evaluate([line("p1", 3, "60.00")], [rule]) == []
    assert evaluate([line("p1", 2, "60.00")], [rule])[0].amount == Decimal("10.00")


def test_buy_x_get_y_frees_cheapest_units():
    rule = make_rule(rule_type=DiscountRuleType.BUY_X_GET_Y, buy_quantity=2, get_free_quantity=1)

    discounts = evaluate([line("shirt", 2, "30.00"), line("scarf", 1, "20.00")], [rule])

    assert discounts[0].amount == Decimal("20.00")
    assert discounts[0].free_items == [
        {"productId": "scarf", "name": "scarf", "quantity": 1, "unitPrice": 20.0}
    ]


def test_unavailable_rules_are_ignored():
    expired = make_rule(discount_percentage=Decimal("10"), expires_at=utcnow() - timedelta(hours=1))
    exhausted = make_rule(discount_percentage=Decimal("10"), max_uses=3, current_uses=3)
    inactive = make_rule(discount_percentage=Decimal("10"), is_active=False)

    assert evaluate([line("p1", 1, "100.00")], [expired, exhausted, inactive]) == []


def test_min_cart_value_condition():
    rule = make_rule(discount_percentage=Decimal("10"), eligibility_conditions={"minCartValue": 100})

    assert evaluate([line("p1", 1, "60.00")], [rule]) == []
    assert evaluate([line("p1", 2, "60.00")], [rule])[0].amount == Decimal("12.00")


def test_required_and_excluded_categories():
    rule = make_rule(
        discount_percentage=Decimal("10"),
        eligibility_conditions={"requiredCategories": ["Retro"], "excludedCategories": ["Kids"]},
    )

    assert evaluate([line("p1", 1, "50.00", category="Serie A")], [rule]) == []
    assert evaluate(
        [line("p1", 1, "50.00", category="Retro"), line("p2", 1, "30.00", category="Kids")], [rule]
    ) == []
    assert evaluate([line("p1", 1, "50.00", category="Retro")], [rule])[0].amount == Decimal("5.00")


def test_time_restrictions_use_store_timezone():
    saturday_only = make_rule(
        discount_percentage=Decimal("10"),
        eligibility_conditions={"timeRestrictions": {"daysOfWeek": [6]}},
    )
    lunch_only = make_rule(
        discount_percentage=Decimal("10"),
        eligibility_conditions={"timeRestrictions": {"startTime": "12:00", "endTime": "14:00"}},
    )

    result = check_eligibility(saturday_only, [line("p1", 1, "10.00")], WEDNESDAY_NOON)
    assert not result.is_eligible
    assert result.message == "This discount is only available on Saturday"

    assert check_eligibility(lunch_only, [line("p1", 1, "10.00")], WEDNESDAY_NOON).is_eligible
    assert not check_eligibility(
        lunch_only, [line("p1", 1, "10.00")], WEDNESDAY_NOON + timedelta(hours=3)
    ).is_eligible


def test_analyze_explains_how_to_qualify():
    value_rule = make_rule(
        name="Spend 100",
        discount_percentage=Decimal("10"),
        eligibility_conditions={"minCartValue": 100},
    )
    bogo = make_rule(
        name="3 for 2",
        rule_type=DiscountRuleType.BUY_X_GET_Y,
        buy_quantity=3,
        get_free_quantity=1,
        applicable_categories=["Serie A"],
    )
    ready = make_rule(name="Welcome", discount_percentage=Decimal("5"))

    analyses = {a.rule_name: a for a in analyze([line("p1", 1, "60.00")], [value_rule, bogo, ready])}

    assert analyses["Spend 100"].reason == "Cart value too low"
    assert analyses["Spend 100"].how_to_qualify == "Add items worth €40.00 more to qualify for this discount"
    assert analyses["3 for 2"].reason == "Need 2 more applicable item(s)"
    assert analyses["3 for 2"].how_to_qualify == "Add 2 more Serie A items to get 1 free"
    assert analyses["Welcome"].is_applicable
    assert analyses["Welcome"].potential_discount == Decimal("3.00")


def test_analyze_without_matching_items():
    rule = make_rule(discount_percentage=Decimal("10"), applicable_categories=["Bundesliga"])

    analysis = analyze([line("p1", 1, "60.00")], [rule])[0]

    assert not analysis.is_applicable
    assert analysis.reason == "No applicable items in cart"
    assert analysis.how_to_qualify == "Add Bundesliga items to qualify"


def test_total_floors_rule_discounts_at_zero():
    lines = [line("p1", 1, "20.00")]
    stacked = evaluate(lines, [
        make_rule(rule_type=DiscountRuleType.FIXED_AMOUNT, discount_amount=Decimal("15")),
        make_rule(rule_type=DiscountRuleType.FIXED_AMOUNT, discount_amount=Decimal("15")),
    ])

    breakdown = compute_total(lines, stacked, coupon_percentage=None, shipping=Decimal("5.00"))

    assert breakdown.discount_total == Decimal("30.00")
    assert breakdown.after_rules == Decimal("0.00")
    assert breakdown.amount == Decimal("5.00")
