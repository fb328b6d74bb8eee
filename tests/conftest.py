"""
Test Suite Configuration
"""
from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from unified_dashboard.config import Settings
from unified_dashboard.config.accounts import AccountSettings, AccountSettingsStore, FeeSettings, SourceCredentials
from unified_dashboard.connectors import SourceConnector
from unified_dashboard.database.models import Base
from unified_dashboard.models import (
    Campaign,
    CustomerIdentity,
    Identity,
    LineItem,
    Order,
    PaymentMethod,
    Shipment,
    SourceName,
)


class FakeClock:
    """Settable clock for cache expiry and breaker cooldown"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 3, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemorySettingsStore(AccountSettingsStore):
    """Account settings held in a dict keyed by identity key"""

    def __init__(self, accounts: Optional[Dict[str, AccountSettings]] = None):
        self.accounts = accounts or {}
        self.identities: List[Identity] = []
        self.saved_tokens: List[tuple] = []

    async def get_settings(self, identity: Identity) -> AccountSettings:
        return self.accounts.get(identity.key, AccountSettings())

    async def save_source_token(self, identity: Identity, source: str, token: str) -> None:
        self.saved_tokens.append((identity.key, source, token))

    async def list_identities(self, limit: int) -> List[Identity]:
        return self.identities[:limit]


class StubConnector(SourceConnector):
    """
    Connector returning canned records, or raising queued errors first.

    ``errors`` are raised one per call before ``records`` are returned.
    """

    def __init__(self, source: SourceName, records=None, errors=None, always_fail: Optional[Exception] = None):
        super().__init__(client=None)
        self.source = source
        self.records = list(records or [])
        self.errors = list(errors or [])
        self.always_fail = always_fail
        self.calls = 0

    async def fetch(self, identity, date_range, account):
        self.calls += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.errors:
            raise self.errors.pop(0)
        return list(self.records)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared by every connection of the test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="user-1")


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def configured_account() -> AccountSettings:
    return AccountSettings(
        fees=FeeSettings(),
        credentials=SourceCredentials(
            shopify_store_url="demo-store.myshopify.com",
            shopify_access_token="shpat_test",
            shiprocket_email="ops@example.com",
            shiprocket_password="secret",
            facebook_access_token="short-token",
            facebook_ad_account_id="123456",
        ),
    )


@pytest.fixture
def sample_orders() -> List[Order]:
    """Three orders: delivered prepaid, returned COD, unshipped prepaid"""
    return [
        Order(
            order_id="1001",
            order_number="#1001",
            order_value=1000.0,
            cost_price=400.0,
            payment_method=PaymentMethod.PREPAID,
            customer=CustomerIdentity(customer_id="c-1", name="Asha Rao", email="asha@example.com"),
            line_items=[
                LineItem(product="Kurta", quantity=2, unit_price=300.0, unit_cost=120.0, vendor="Loom Co"),
                LineItem(product="Scarf", quantity=1, unit_price=400.0, unit_cost=160.0, vendor="Silk House"),
            ],
            created_at=datetime(2025, 2, 20, 10, 0, 0),
            shipping_state="Karnataka",
        ),
        Order(
            order_id="1002",
            order_number="#1002",
            order_value=500.0,
            cost_price=200.0,
            payment_method=PaymentMethod.COD,
            customer=CustomerIdentity(customer_id="c-2", name="Ravi Das"),
            line_items=[
                LineItem(product="Scarf", quantity=1, unit_price=500.0, unit_cost=200.0, vendor="Silk House"),
            ],
            created_at=datetime(2025, 2, 21, 9, 30, 0),
            shipping_state="Kerala",
        ),
        Order(
            order_id="1003",
            order_number="#1003",
            order_value=250.0,
            cost_price=None,
            payment_method=PaymentMethod.PREPAID,
            customer=CustomerIdentity(customer_id="c-1", name="Asha Rao"),
            line_items=[LineItem(product="Kurta", quantity=1, unit_price=250.0)],
            created_at=datetime(2025, 2, 21, 18, 45, 0),
            shipping_state="Karnataka",
        ),
    ]


@pytest.fixture
def sample_shipments() -> List[Shipment]:
    return [
        Shipment(shipment_id="s-1", order_id="sr-1", order_number="#1001", status="Delivered", shipping_charge=60.0),
        Shipment(
            shipment_id="s-2",
            order_id="sr-2",
            order_number="#1002",
            status="RTO Delivered",
            shipping_charge=80.0,
            customer_state="Kerala",
            rto_reason="Customer refused",
        ),
    ]


@pytest.fixture
def sample_campaigns() -> List[Campaign]:
    return [
        Campaign(campaign_name="Spring Sale", spend=150.0, purchases=3, purchase_value=900.0),
        Campaign(campaign_name="Retargeting", spend=50.0),
    ]


@pytest.fixture
def stub_connector():
    """The StubConnector class, for building connectors with canned results"""
    return StubConnector
