"""Builders for test data"""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
import uuid

from goalmania.core.security import SecurityUtils
from goalmania.models import (
    Address, Coupon, DiscountRule, DiscountRuleType, Order, OrderDetails, OrderStatus, Product, User, UserRole
)
from goalmania.models.order import OrderDetailsStatus, PaymentProviderName
from goalmania.services.discount_engine import CartLine
from goalmania.utils.helpers import utcnow


def auth_headers(user: User) -> Dict[str, str]:
    token = SecurityUtils.create_access_token({
        "sub": str(user.id),
        "role": UserRole(user.role).value,
        "email": user.email,
    })
    return {"Authorization": f"Bearer {token}"}


def principal(user: User) -> Dict[str, Any]:
    return {"id": str(user.id), "role": UserRole(user.role).value, "email": user.email}


def make_rule(**overrides) -> SimpleNamespace:
    """Transient rule for the pure evaluator"""
    rule = dict(
        id=uuid.uuid4(),
        name="Rule",
        description=None,
        rule_type=DiscountRuleType.PERCENTAGE,
        is_active=True,
        priority=0,
        expires_at=None,
        max_uses=None,
        current_uses=0,
        min_quantity=None,
        max_quantity=None,
        discount_percentage=None,
        discount_amount=None,
        buy_quantity=None,
        get_free_quantity=None,
        free_product_ids=[],
        applicable_categories=[],
        applicable_product_ids=[],
        excluded_product_ids=[],
        eligibility_conditions=None,
        created_at=utcnow(),
    )
    rule.update(overrides)
    return SimpleNamespace(**rule)


def line(product_id: str, quantity: int, unit_price, category: str = "Serie A", name: str = "") -> CartLine:
    return CartLine(
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal(str(unit_price)),
        category=category,
        name=name or product_id,
    )


async def create_user(db, role: UserRole = UserRole.USER, language: str = "it", email: Optional[str] = None) -> User:
    user = User(
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        name="Marco Rossi",
        role=role,
        language=language,
    )
    db.add(user)
    await db.commit()
    return user


async def create_address(db, user: User) -> Address:
    address = Address(
        user_id=user.id,
        full_name=user.name,
        address_line1="Via Roma 1",
        city="Milano",
        state="MI",
        postal_code="20121",
        country="Italy",
    )
    db.add(address)
    await db.commit()
    return address


async def create_product(
    db,
    name: str = "Inter Home 24/25",
    price="100.00",
    stock: int = 10,
    category: str = "Serie A",
    shipping_price=None,
) -> Product:
    product = Product(
        name=name,
        category=category,
        price=Decimal(str(price)),
        shipping_price=Decimal(str(shipping_price)) if shipping_price is not None else None,
        stock_quantity=stock,
        is_active=True,
    )
    db.add(product)
    await db.commit()
    return product


async def create_coupon(db, code: str = "VIP20", percentage: int = 20, max_uses: Optional[int] = None) -> Coupon:
    coupon = Coupon(
        code=code,
        discount_percentage=percentage,
        expires_at=utcnow() + timedelta(days=30),
        is_active=True,
        max_uses=max_uses,
        current_uses=0,
    )
    db.add(coupon)
    await db.commit()
    return coupon


async def create_rule(db, **fields) -> DiscountRule:
    fields.setdefault("name", "Rule")
    fields.setdefault("rule_type", DiscountRuleType.PERCENTAGE)
    for key in ("free_product_ids", "applicable_categories", "applicable_product_ids", "excluded_product_ids"):
        fields.setdefault(key, [])
    rule = DiscountRule(current_uses=0, **fields)
    db.add(rule)
    await db.commit()
    return rule


async def create_details(
    db,
    user: User,
    product: Product,
    quantity: int,
    intent_id: str,
    amount="100.00",
    provider: PaymentProviderName = PaymentProviderName.STRIPE,
    address: Optional[Address] = None,
    applied_rules: Optional[List[Dict[str, Any]]] = None,
) -> OrderDetails:
    details = OrderDetails(
        payment_intent_id=intent_id,
        provider=provider,
        user_id=user.id,
        address_id=address.id if address else None,
        full_items=[{
            "productId": str(product.id),
            "name": product.name,
            "price": float(product.price),
            "quantity": quantity,
            "customization": {"name": "LAUTARO", "number": "10", "selectedPatches": ["serie-a"]},
        }],
        applied_rules=applied_rules or [],
        amount=Decimal(str(amount)),
        discount_total=Decimal("0"),
        currency="eur",
        status=OrderDetailsStatus.PENDING,
    )
    db.add(details)
    await db.commit()
    return details


async def create_order(
    db,
    user: User,
    status: OrderStatus = OrderStatus.PAID,
    provider: PaymentProviderName = PaymentProviderName.STRIPE,
    amount="72.00",
    provider_reference: Optional[str] = "pi_ref",
    tracking_code: Optional[str] = None,
) -> Order:
    order = Order(
        user_id=user.id,
        items=[{"productId": str(uuid.uuid4()), "name": "Milan Away", "price": 72.0, "quantity": 1}],
        amount=Decimal(str(amount)),
        discount_total=Decimal("0"),
        currency="eur",
        status=status,
        payment_intent_id=f"intent_{uuid.uuid4().hex[:12]}",
        payment_provider=provider,
        provider_reference=provider_reference,
        tracking_code=tracking_code,
    )
    db.add(order)
    await db.commit()
    return order
