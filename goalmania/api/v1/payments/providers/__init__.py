"""Payment provider adapters"""

from functools import lru_cache
from typing import Dict

from goalmania.core.exceptions import BadRequestException
from .base import (
    FAILED, PENDING, SUCCEEDED, PaymentHandle, PaymentOutcome, PaymentProvider, RefundOutcome,
    run_sync, with_retries
)
from .mollie_client import MollieProvider
from .paypal_client import PayPalProvider
from .stripe_client import StripeProvider

PaymentProviders = Dict[str, PaymentProvider]


@lru_cache()
def _default_providers() -> PaymentProviders:
    return {
        provider.name: provider
        for provider in (StripeProvider(), PayPalProvider(), MollieProvider())
    }


def get_payment_providers() -> PaymentProviders:
    """FastAPI dependency returning the providers keyed by name"""
    return _default_providers()


def select_provider(providers: PaymentProviders, name: str) -> PaymentProvider:
    provider = providers.get(getattr(name, "value", name))
    if provider is None:
        raise BadRequestException(f"Unsupported payment provider: {name}", error_code="UNSUPPORTED_PROVIDER")
    return provider


__all__ = [
    "FAILED", "PENDING", "SUCCEEDED",
    "PaymentHandle", "PaymentOutcome", "PaymentProvider", "RefundOutcome",
    "StripeProvider", "PayPalProvider", "MollieProvider",
    "PaymentProviders", "get_payment_providers", "select_provider", "run_sync", "with_retries",
]
