"""Provider adapters: response mapping, error taxonomy and retries"""

from decimal import Decimal

import httpx
import pytest
import stripe

from goalmania.api.v1.payments.providers import (
    FAILED, SUCCEEDED, PayPalProvider, StripeProvider, select_provider, with_retries
)
from goalmania.api.v1.payments.providers.stripe_client import map_stripe_error
from goalmania.core.exceptions import (
    BadRequestException, ProviderAuthFailure, ProviderRejected, ProviderUnavailable
)


def paypal(handler) -> PayPalProvider:
    def route(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21AA", "token_type": "Bearer"})
        return handler(request)

    return PayPalProvider(
        client_id="client",
        client_secret="secret",
        base_url="https://api-m.sandbox.paypal.com",
        transport=httpx.MockTransport(route),
    )


async def test_paypal_create_order_returns_approval_link():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.read()
        return httpx.Response(201, json={
            "id": "5O190127TN364715T",
            "status": "CREATED",
            "links": [
                {"href": "https://api.sandbox.paypal.com/v2/checkout/orders/5O190127TN364715T", "rel": "self"},
                {"href": "https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T", "rel": "approve"},
            ],
        })

    handle = await paypal(handler).create_intent(Decimal("72"), "eur", {"userId": "u1"})

    assert handle.intent_id == "5O190127TN364715T"
    assert handle.approval_url.endswith("token=5O190127TN364715T")
    assert seen["auth"] == "Bearer A21AA"
    assert b'"value": "72.00"' in seen["body"]
    assert b'"currency_code": "EUR"' in seen["body"]


async def test_paypal_capture_completed():
    def handler(request):
        assert request.url.path == "/v2/checkout/orders/ORDER-1/capture"
        return httpx.Response(201, json={
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{"payments": {"captures": [{
                "id": "CAPTURE-9", "status": "COMPLETED",
                "amount": {"currency_code": "EUR", "value": "72.00"},
            }]}}],
        })

    outcome = await paypal(handler).confirm("ORDER-1")

    assert outcome.status == SUCCEEDED
    assert outcome.provider_reference == "CAPTURE-9"
    assert outcome.amount == Decimal("72.00")
    assert outcome.currency == "eur"


async def test_paypal_declined_capture_is_failed():
    def handler(request):
        return httpx.Response(201, json={
            "id": "ORDER-2",
            "status": "PAYER_ACTION_REQUIRED",
            "purchase_units": [{"payments": {"captures": [{"id": "C-2", "status": "DECLINED"}]}}],
        })

    assert (await paypal(handler).confirm("ORDER-2")).status == FAILED


@pytest.mark.parametrize("status_code, error", [
    (401, ProviderAuthFailure),
    (422, ProviderRejected),
    (429, ProviderUnavailable),
    (503, ProviderUnavailable),
])
async def test_paypal_error_mapping(status_code, error):
    def handler(request):
        return httpx.Response(status_code, json={
            "name": "UNPROCESSABLE_ENTITY",
            "details": [{"issue": "ORDER_NOT_APPROVED"}],
        })

    with pytest.raises(error) as exc:
        await paypal(handler).confirm("ORDER-3")
    assert exc.value.provider == "paypal"


async def test_paypal_network_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderUnavailable):
        await paypal(handler).refund("CAPTURE-1")


async def test_paypal_missing_credentials():
    provider = paypal(lambda request: httpx.Response(200, json={}))
    provider.client_id = provider.client_secret = None

    with pytest.raises(ProviderAuthFailure):
        await provider.confirm("ORDER-4")


def test_stripe_error_mapping():
    assert isinstance(map_stripe_error(stripe.AuthenticationError("bad key")), ProviderAuthFailure)
    assert isinstance(map_stripe_error(stripe.CardError("declined", None, "card_declined")), ProviderRejected)
    assert isinstance(map_stripe_error(stripe.APIConnectionError("timeout")), ProviderUnavailable)
    assert isinstance(map_stripe_error(stripe.RateLimitError("slow down")), ProviderUnavailable)


def test_stripe_webhook_signature_is_verified():
    provider = StripeProvider(api_key="sk_test", webhook_secret="whsec_test")

    with pytest.raises(BadRequestException) as exc:
        provider.parse_webhook(b'{"type": "payment_intent.succeeded"}', "t=1,v1=deadbeef")
    assert exc.value.error_code == "INVALID_SIGNATURE"

    with pytest.raises(BadRequestException):
        provider.parse_webhook(b"{}", None)


async def test_with_retries_retries_only_unavailable():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ProviderUnavailable("stripe", "503")
        return "ok"

    assert await with_retries(flaky, attempts=3, backoff=0) == "ok"
    assert len(calls) == 3

    rejected = []

    async def declined():
        rejected.append(1)
        raise ProviderRejected("stripe", "card_declined")

    with pytest.raises(ProviderRejected):
        await with_retries(declined, attempts=3, backoff=0)
    assert len(rejected) == 1


async def test_with_retries_gives_up():
    async def down():
        raise ProviderUnavailable("mollie", "timeout")

    with pytest.raises(ProviderUnavailable):
        await with_retries(down, attempts=2, backoff=0)


def test_select_provider_rejects_unknown_name(providers):
    assert select_provider(providers, "stripe").name == "stripe"
    with pytest.raises(BadRequestException) as exc:
        select_provider(providers, "razorpay")
    assert exc.value.error_code == "UNSUPPORTED_PROVIDER"
