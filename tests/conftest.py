"""
Shared fixtures: in-memory database, fake payment providers, recording
mail transport and an HTTP client bound to the application
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from goalmania.api.v1.payments.providers import (
    PENDING, SUCCEEDED, PaymentHandle, PaymentOutcome, PaymentProvider, RefundOutcome, StripeProvider,
    get_payment_providers
)
from goalmania.core.cache import MemoryCache, get_cache
from goalmania.core.database import get_db
from goalmania.main import create_app
from goalmania.models import Base
from goalmania.services.email_service import MailMessage
from goalmania.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


class RecordingTransport:
    """Mail transport keeping messages in memory"""

    def __init__(self, fail: bool = False):
        self.sent: List[MailMessage] = []
        self.fail = fail

    async def send(self, message: MailMessage) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append(message)

    def kinds_to(self, recipient: str) -> List[str]:
        return [message.subject for message in self.sent if message.to == recipient]


class FakeGateway:
    """Provider behaviour shared by the fakes; outcomes are set per test"""

    def _setup(self, name: str):
        self.name = name
        self.created: List[Dict[str, Any]] = []
        self.refunds: List[Dict[str, Any]] = []
        self.outcomes: Dict[str, PaymentOutcome] = {}
        self.confirm_calls = 0
        # method name -> exception raised instead of answering
        self.failures: Dict[str, Exception] = {}

    def _maybe_fail(self, method: str):
        if method in self.failures:
            raise self.failures[method]

    async def create_intent(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> PaymentHandle:
        self._maybe_fail("create_intent")
        intent_id = f"{self.name}_intent_{len(self.created) + 1}"
        self.created.append({"intent_id": intent_id, "amount": amount, "currency": currency, "metadata": metadata})
        return PaymentHandle(
            provider=self.name,
            intent_id=intent_id,
            status=PENDING,
            client_secret=f"{intent_id}_secret" if self.name == "stripe" else None,
            approval_url=f"https://pay.example/{intent_id}" if self.name != "stripe" else None,
        )

    def succeed(self, intent_id: str, amount: Optional[Decimal] = None, reference: Optional[str] = None):
        self.outcomes[intent_id] = PaymentOutcome(
            status=SUCCEEDED,
            provider=self.name,
            intent_id=intent_id,
            provider_reference=reference or intent_id,
            amount=amount,
        )

    async def confirm(self, intent_id: str) -> PaymentOutcome:
        self.confirm_calls += 1
        self._maybe_fail("confirm")
        return self.outcomes.get(
            intent_id, PaymentOutcome(status=PENDING, provider=self.name, intent_id=intent_id)
        )

    async def refund(self, provider_reference: str, amount: Optional[Decimal] = None) -> RefundOutcome:
        self._maybe_fail("refund")
        self.refunds.append({"reference": provider_reference, "amount": amount})
        return RefundOutcome(status=SUCCEEDED, refund_reference=f"re_{len(self.refunds)}")


class FakeProvider(FakeGateway, PaymentProvider):
    def __init__(self, name: str):
        self._setup(name)


class FakeStripeProvider(FakeGateway, StripeProvider):
    """Real webhook signature checks, no network"""

    def __init__(self):
        StripeProvider.__init__(self, api_key="sk_test", webhook_secret=WEBHOOK_SECRET)
        self._setup("stripe")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transactions break SAVEPOINT; take control of BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def providers():
    return {
        "stripe": FakeStripeProvider(),
        "paypal": FakeProvider("paypal"),
        "mollie": FakeProvider("mollie"),
    }


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport):
    return NotificationDispatcher(transport=transport)


@pytest.fixture
def cache():
    return MemoryCache(max_entries=100, default_ttl=60)


@pytest.fixture
async def client(session_factory, providers, dispatcher, cache):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_providers] = lambda: providers
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_cache] = lambda: cache

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
