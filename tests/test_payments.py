"""Checkout, provider confirmations and webhooks over HTTP"""

import hashlib
import hmac
import json
import time

from sqlalchemy import func, select, update

from goalmania.core.exceptions import ProviderRejected
from goalmania.models import Coupon, Order, OrderDetails, Product, UserRole
from tests.conftest import WEBHOOK_SECRET
from tests.factories import auth_headers, create_address, create_coupon, create_product, create_user


def signed(event: dict):
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = hmac.new(
        WEBHOOK_SECRET.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return payload, {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def intent_event(intent_id: str, event_type: str = "payment_intent.succeeded", **fields) -> dict:
    return {
        "id": f"evt_{intent_id}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", **fields}},
    }


async def open_checkout(client, db, provider="stripe", quantity=3, stock=5, coupon_code=None):
    user = await create_user(db, role=UserRole.PREMIUM, language="en")
    address = await create_address(db, user)
    product = await create_product(db, price="100.00", stock=stock)
    response = await client.post(
        "/api/v1/checkout/intent",
        json={
            "items": [{"product_id": str(product.id), "quantity": quantity}],
            "provider": provider,
            "address_id": str(address.id),
            "coupon_code": coupon_code,
        },
        headers=auth_headers(user),
    )
    return user, product, response


async def test_quote_endpoint(client, db):
    user = await create_user(db)
    product = await create_product(db, price="59.90", shipping_price="4.90")

    response = await client.post(
        "/api/v1/checkout/quote",
        json={"items": [{"product_id": str(product.id), "quantity": 2}], "coupon_code": ""},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["line_subtotal"] == 119.8
    assert body["amount"] == 124.7
    assert body["coupon"] is None


async def test_stripe_webhook_creates_exactly_one_order(client, db, providers, transport):
    await create_coupon(db, code="VIP20", percentage=20)
    user, product, response = await open_checkout(client, db, coupon_code="VIP20")

    assert response.status_code == 201
    checkout = response.json()
    intent_id = checkout["payment_intent_id"]
    assert checkout["client_secret"] == f"{intent_id}_secret"
    assert checkout["quote"]["amount"] == 240.0
    assert providers["stripe"].created[0]["metadata"]["userId"] == str(user.id)

    providers["stripe"].succeed(intent_id)
    payload, headers = signed(intent_event(intent_id))

    first = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)
    second = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)

    assert first.status_code == 200 and second.status_code == 200
    assert first.json()["status"] == "created"
    assert second.json()["status"] == "duplicate"
    assert first.json()["order_id"] == second.json()["order_id"]

    orders = await client.get("/api/v1/orders", headers=auth_headers(user))
    assert orders.json()["total"] == 1
    order = orders.json()["items"][0]
    assert order["amount"] == 240.0
    assert order["status"] == "paid"
    assert order["coupon"]["code"] == "VIP20"

    assert await db.scalar(select(func.count()).select_from(Order)) == 1
    assert await db.scalar(select(Product.stock_quantity).where(Product.id == product.id)) == 2
    assert len(transport.sent) == 1


async def test_stripe_webhook_rejects_bad_signature(client, db):
    payload, headers = signed(intent_event("pi_forged"))
    headers["Stripe-Signature"] = headers["Stripe-Signature"][:-4] + "0000"

    response = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


async def test_stripe_webhook_without_signature(client):
    response = await client.post("/api/v1/payments/webhooks/stripe", content=json.dumps(intent_event("pi_x")))

    assert response.status_code == 400


async def test_webhook_for_unknown_intent_is_acknowledged(client, providers):
    providers["stripe"].succeed("pi_unknown")
    payload, headers = signed(intent_event("pi_unknown"))

    response = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


async def test_payment_failed_event_is_recorded(client, db):
    _, _, response = await open_checkout(client, db)
    intent_id = response.json()["payment_intent_id"]
    payload, headers = signed(intent_event(
        intent_id, "payment_intent.payment_failed", last_payment_error={"message": "Your card was declined."}
    ))

    response = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)

    assert response.json()["status"] == "failed"
    assert await db.scalar(select(func.count()).select_from(Order)) == 0


async def test_stock_shortfall_at_reconcile_is_acknowledged_as_rejected(client, db, providers):
    _, product, response = await open_checkout(client, db, quantity=3, stock=5)
    intent_id = response.json()["payment_intent_id"]
    await db.execute(update(Product).where(Product.id == product.id).values(stock_quantity=1))
    await db.commit()

    providers["stripe"].succeed(intent_id)
    payload, headers = signed(intent_event(intent_id))
    response = await client.post("/api/v1/payments/webhooks/stripe", content=payload, headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert await db.scalar(select(func.count()).select_from(Order)) == 0
    assert await db.scalar(select(Product.stock_quantity).where(Product.id == product.id)) == 1


async def test_paypal_capture_is_idempotent(client, db, providers):
    user, _, response = await open_checkout(client, db, provider="paypal", quantity=1)
    checkout = response.json()
    assert checkout["approval_url"] == f"https://pay.example/{checkout['payment_intent_id']}"

    providers["paypal"].succeed(checkout["payment_intent_id"], reference="CAPTURE-1")
    body = {"order_id": checkout["payment_intent_id"]}

    first = await client.post("/api/v1/payments/paypal/capture", json=body, headers=auth_headers(user))
    second = await client.post("/api/v1/payments/paypal/capture", json=body, headers=auth_headers(user))

    assert first.json()["created"] is True
    assert second.json() == {"status": "succeeded", "order_id": first.json()["order_id"], "created": False}
    assert providers["paypal"].confirm_calls == 1


async def test_paypal_capture_is_limited_to_the_buyer(client, db):
    _, _, response = await open_checkout(client, db, provider="paypal", quantity=1)
    stranger = await create_user(db)

    response = await client.post(
        "/api/v1/payments/paypal/capture",
        json={"order_id": response.json()["payment_intent_id"]},
        headers=auth_headers(stranger),
    )

    assert response.status_code == 404


async def test_mollie_webhook_polls_payment_status(client, db, providers):
    _, _, response = await open_checkout(client, db, provider="mollie", quantity=1)
    payment_id = response.json()["payment_intent_id"]

    pending = await client.post("/api/v1/payments/webhooks/mollie", data={"id": payment_id})
    assert pending.json()["status"] == "pending"

    providers["mollie"].succeed(payment_id)
    paid = await client.post("/api/v1/payments/webhooks/mollie", data={"id": payment_id})
    assert paid.json()["status"] == "created"


async def test_intent_requires_own_address(client, db):
    owner = await create_user(db)
    other = await create_user(db)
    address = await create_address(db, owner)
    product = await create_product(db)

    response = await client.post(
        "/api/v1/checkout/intent",
        json={
            "items": [{"product_id": str(product.id), "quantity": 1}],
            "provider": "stripe",
            "address_id": str(address.id),
        },
        headers=auth_headers(other),
    )

    assert response.status_code == 404


async def test_declined_intent_releases_the_coupon(client, db, providers):
    await create_coupon(db, code="VIP20", percentage=20, max_uses=1)
    providers["stripe"].failures["create_intent"] = ProviderRejected("stripe", "card declined")

    _, _, response = await open_checkout(client, db, coupon_code="VIP20")

    assert response.status_code == 402
    assert response.json()["code"] == "PROVIDER_REJECTED"
    coupon = (await db.execute(
        select(Coupon).where(Coupon.code == "VIP20").execution_options(populate_existing=True)
    )).scalar_one()
    assert coupon.current_uses == 0
    assert await db.scalar(select(func.count()).select_from(OrderDetails)) == 0


async def test_mollie_webhook_for_unknown_payment_is_acknowledged(client, providers):
    providers["mollie"].failures["confirm"] = ProviderRejected("mollie", "The payment id is invalid")

    response = await client.post("/api/v1/payments/webhooks/mollie", data={"id": "tr_unknown"})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
