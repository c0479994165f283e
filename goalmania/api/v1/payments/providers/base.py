"""
Payment provider contract shared by Stripe, PayPal and Mollie
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
import asyncio
import functools
import logging

from goalmania.core.config import settings
from goalmania.core.exceptions import ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUCCEEDED = "succeeded"
FAILED = "failed"
PENDING = "pending"


@dataclass
class PaymentHandle:
    """What the storefront needs to complete a payment"""
    provider: str
    intent_id: str
    status: str = PENDING
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None


@dataclass
class PaymentOutcome:
    """Authoritative payment status fetched from the provider"""
    status: str
    provider: str
    intent_id: str
    provider_reference: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


@dataclass
class RefundOutcome:
    status: str
    refund_reference: Optional[str] = None


class PaymentProvider(ABC):
    """One implementation per payment gateway"""

    name: str = ""

    @abstractmethod
    async def create_intent(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> PaymentHandle:
        """Open a payment for ``amount`` and return the client handle"""

    @abstractmethod
    async def confirm(self, intent_id: str) -> PaymentOutcome:
        """Fetch (or, for PayPal, capture) the payment and report its status"""

    @abstractmethod
    async def refund(self, provider_reference: str, amount: Optional[Decimal] = None) -> RefundOutcome:
        """Refund a captured payment, fully unless ``amount`` is given"""


async def run_sync(provider: str, func: Callable[..., T], *args, **kwargs) -> T:
    """
    Run a blocking SDK call in a worker thread under the provider timeout

    Raises:
        ProviderUnavailable: the call did not finish in time
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(functools.partial(func, *args, **kwargs)),
            timeout=settings.PAYMENT_PROVIDER_TIMEOUT,
        )
    except asyncio.TimeoutError:
        raise ProviderUnavailable(provider, f"no response within {settings.PAYMENT_PROVIDER_TIMEOUT}s")


async def with_retries(
    call: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
) -> T:
    """
    Retry ``call`` on ProviderUnavailable with exponential backoff

    Auth failures and rejections are raised straight away.
    """
    attempts = attempts or settings.PAYMENT_MAX_ATTEMPTS
    backoff = settings.PAYMENT_BACKOFF_BASE if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except ProviderUnavailable as e:
            if attempt == attempts:
                logger.error(f"Provider call failed after {attempts} attempts: {e.detail}")
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(f"Provider unavailable (attempt {attempt}/{attempts}), retrying in {delay}s: {e.detail}")
            await asyncio.sleep(delay)
