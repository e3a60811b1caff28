"""
Shared fixtures.

Every test gets its own SQLite file database. The payment provider and the
human-verification provider are replaced with in-process fakes injected
through FastAPI dependency overrides.
"""

import json
import os

# Must be set before shortcut.core.setting is imported
os.environ["ENV_SETTING"] = "dev"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTO_CREATE_SCHEMA"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256-signing"
os.environ["BASE_URL"] = "http://sho.rt"

from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from shortcut.api.deps import get_billing_client, get_human_verifier
from shortcut.core.exceptions import HumanVerificationError, WebhookSignatureError
from shortcut.core.security import create_access_token
from shortcut.core.tiers import Tier
from shortcut.db import models  # noqa: F401
from shortcut.db.adapters import SQLiteAdapter
from shortcut.db.models import Account
from shortcut.db.session import get_session
from shortcut.main import app
from shortcut.services.account_service import AccountService
from shortcut.services.billing import CheckoutSession

HUMAN_TOKEN = "human-token"
VALID_SIGNATURE = "t=1,v1=valid"


class FakeVerifier:
    """Accepts exactly one token."""

    accepted_token = HUMAN_TOKEN

    def __init__(self):
        self.calls = []

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> None:
        self.calls.append((token, remote_ip))
        if token != HUMAN_TOKEN:
            raise HumanVerificationError()


class FakeBillingClient:
    """Stands in for StripeBillingClient; records what it was asked to do."""

    valid_signature = VALID_SIGNATURE

    def __init__(self, configured: bool = True, has_active_subscription: bool = True):
        self.configured = configured
        self.has_active_subscription = has_active_subscription
        self.customers_created = []
        self.checkouts = []
        self.cancellations = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def create_customer(self, email: str, name: str, account_id: str) -> str:
        self.customers_created.append(account_id)
        return f"cus_{account_id[:8]}"

    async def create_checkout_session(self, customer_id, tier, account_id, success_url, cancel_url):
        self.checkouts.append((customer_id, tier, account_id))
        return CheckoutSession(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

    async def cancel_subscription_at_period_end(self, customer_id: str) -> Optional[str]:
        self.cancellations.append(customer_id)
        return "sub_test_1" if self.has_active_subscription else None

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("no signatures found matching the expected signature")
        return json.loads(payload)


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = SQLiteAdapter().create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def billing_client():
    return FakeBillingClient()


@pytest_asyncio.fixture
async def client(session_maker, billing_client, verifier):
    async def override_get_session():
        async with session_maker() as db_session:
            try:
                yield db_session
                await db_session.commit()
            except Exception:
                await db_session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_billing_client] = lambda: billing_client
    app.dependency_overrides[get_human_verifier] = lambda: verifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_account(session):
    """Factory persisting an account with the given tier through ``session``."""

    async def _make_account(
        email: str = "user@example.com",
        tier: Tier = Tier.FREE,
        expiry: Optional[datetime] = None,
        billing_customer_id: Optional[str] = None,
        password: str = "secret-pass",
    ) -> Account:
        account = await AccountService(session).register("Test User", email, password)
        account.tier = tier
        account.subscription_expiry = expiry
        account.billing_customer_id = billing_customer_id
        await session.commit()
        await session.refresh(account)
        return account

    return _make_account


@pytest.fixture
def auth_headers():
    def _auth_headers(account: Account) -> dict:
        return {"Authorization": f"Bearer {create_access_token(account.id)}"}

    return _auth_headers
