"""Order creation from confirmed payments"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from goalmania.api.v1.payments.providers import FAILED, SUCCEEDED, PaymentOutcome
from goalmania.core.exceptions import BadRequestException, ConflictException, InsufficientStockException
from goalmania.models import DiscountRule, Order, OrderDetails, OrderStatus, Product
from goalmania.models.order import OrderDetailsStatus
from goalmania.services.discount_rule_service import ACTIVE_RULES_KEY
from goalmania.services.order_reconciliation import ReconciliationService
from tests.factories import create_address, create_details, create_product, create_rule, create_user


def succeeded(intent_id: str, amount: str = "100.00") -> PaymentOutcome:
    return PaymentOutcome(
        status=SUCCEEDED, provider="stripe", intent_id=intent_id,
        provider_reference=intent_id, amount=Decimal(amount),
    )


async def count_orders(db) -> int:
    return await db.scalar(select(func.count()).select_from(Order))


async def test_duplicate_confirmation_creates_one_order(db, dispatcher, transport):
    user = await create_user(db, language="en")
    address = await create_address(db, user)
    product = await create_product(db, stock=5)
    await create_details(db, user, product, quantity=3, intent_id="pi_1", address=address)
    service = ReconciliationService(db, dispatcher)

    first = await service.reconcile("pi_1", succeeded("pi_1"))
    second = await service.reconcile("pi_1", succeeded("pi_1"))

    assert first.created and not second.created
    assert first.order.id == second.order.id
    assert await count_orders(db) == 1

    stock = await db.scalar(select(Product.stock_quantity).where(Product.id == product.id))
    assert stock == 2

    order = first.order
    assert OrderStatus(order.status) == OrderStatus.PAID
    assert order.shipping_address == {
        "street": "Via Roma 1", "city": "Milano", "state": "MI", "postalCode": "20121", "country": "Italy",
    }
    assert order.items[0]["customization"]["selectedPatches"][0]["id"] == "serie-a"

    details = await db.scalar(select(OrderDetails).where(OrderDetails.payment_intent_id == "pi_1"))
    assert OrderDetailsStatus(details.status) == OrderDetailsStatus.COMPLETED

    # Confirmation goes out once, in the customer's language
    assert [message.subject for message in transport.sent] == ["Order Confirmation - Goal Mania"]


async def test_stock_shortfall_rejects_checkout(db, dispatcher, transport):
    user = await create_user(db)
    product = await create_product(db, stock=5)
    await create_details(db, user, product, quantity=6, intent_id="pi_short")
    service = ReconciliationService(db, dispatcher)

    with pytest.raises(InsufficientStockException):
        await service.reconcile("pi_short", succeeded("pi_short"))

    assert await count_orders(db) == 0
    assert await db.scalar(select(Product.stock_quantity).where(Product.id == product.id)) == 5
    details = await db.scalar(select(OrderDetails).where(OrderDetails.payment_intent_id == "pi_short"))
    assert OrderDetailsStatus(details.status) == OrderDetailsStatus.REJECTED
    assert "Insufficient stock" in details.failure_reason
    assert transport.sent == []

    with pytest.raises(ConflictException) as exc:
        await service.reconcile("pi_short", succeeded("pi_short"))
    assert exc.value.error_code == "CHECKOUT_REJECTED"


async def test_unpaid_outcome_is_refused(db):
    service = ReconciliationService(db)
    outcome = PaymentOutcome(status=FAILED, provider="mollie", intent_id="tr_1")

    with pytest.raises(BadRequestException) as exc:
        await service.reconcile("tr_1", outcome)
    assert exc.value.error_code == "PAYMENT_NOT_CAPTURED"


async def test_rule_usage_is_recorded_on_reconcile(db):
    user = await create_user(db)
    product = await create_product(db)
    rule = await create_rule(db, name="Once", discount_percentage=Decimal("10"), max_uses=1)
    await create_details(
        db, user, product, quantity=1, intent_id="pi_rule",
        applied_rules=[{"rule_id": str(rule.id), "rule_name": "Once", "amount": 10.0}],
    )

    await ReconciliationService(db).reconcile("pi_rule", succeeded("pi_rule"))

    uses = await db.scalar(select(DiscountRule.current_uses).where(DiscountRule.id == rule.id))
    assert uses == 1


async def test_failed_payment_keeps_reason(db):
    user = await create_user(db)
    product = await create_product(db)
    await create_details(db, user, product, quantity=1, intent_id="pi_declined")
    service = ReconciliationService(db)

    await service.record_failure("pi_declined", "Your card was declined.")
    await db.commit()

    details = await db.scalar(select(OrderDetails).where(OrderDetails.payment_intent_id == "pi_declined"))
    assert details.failure_reason == "Your card was declined."
    assert OrderDetailsStatus(details.status) == OrderDetailsStatus.PENDING


async def test_rule_reaching_its_cap_invalidates_cached_rules(db, cache):
    user = await create_user(db)
    product = await create_product(db)
    capped = await create_rule(db, name="Once", discount_percentage=Decimal("10"), max_uses=1)
    uncapped = await create_rule(db, name="Always", discount_percentage=Decimal("5"))
    for intent_id, rule in (("pi_open", uncapped), ("pi_capped", capped)):
        await create_details(
            db, user, product, quantity=1, intent_id=intent_id,
            applied_rules=[{"rule_id": str(rule.id), "rule_name": rule.name, "amount": 10.0}],
        )
    await cache.set(ACTIVE_RULES_KEY, [{"name": "Once"}, {"name": "Always"}])
    service = ReconciliationService(db, cache=cache)

    await service.reconcile("pi_open", succeeded("pi_open"))
    assert await cache.get(ACTIVE_RULES_KEY) is not None

    await service.reconcile("pi_capped", succeeded("pi_capped"))
    assert await cache.get(ACTIVE_RULES_KEY) is None
