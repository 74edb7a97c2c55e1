"""
Pytest configuration and fixtures for testing
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from config import settings
from database import Store
from database_models import (
    PAYMENT_APPROVED,
    SUBSCRIPTION_ACTIVE,
    Payment,
    UserEntitlement,
    UserSubscription,
)
from services.admin_review_service import AdminReviewService
from services.entitlement_service import EntitlementService
from services.payment_service import PaymentService
from services.plan_service import PlanService
from services.trial_service import TrialService

TEST_JWT_SECRET = "test-secret-key-for-unit-tests-only-0123456789"


class FrozenClock:
    """Controllable replacement for utils.clock.utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
async def store(tmp_path):
    """
    Fixture that provides an opened Store on a fresh SQLite file for each test.

    A file (rather than :memory:) lets concurrent sessions use separate
    connections, the way they do against a real server.
    """
    test_store = Store(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        timeout_seconds=10.0,
        retry_attempts=3,
        retry_backoff_seconds=0.01,
    )
    await test_store.open()
    try:
        yield test_store
    finally:
        await test_store.close()


@pytest.fixture
async def plan(store, clock):
    """The default 200.00 / 30 day plan."""
    return await PlanService(store, clock=clock).ensure_default_plan()


@pytest.fixture
def trial_service(store, clock):
    return TrialService(store, clock=clock, trial_days=7)


@pytest.fixture
def payment_service(store, clock):
    return PaymentService(store, clock=clock)


@pytest.fixture
def entitlement_service(store, clock):
    return EntitlementService(store, clock=clock)


@pytest.fixture
def review_service(store, clock):
    return AdminReviewService(store, clock=clock, default_duration_days=30)


@pytest.fixture
def plan_service(store, clock):
    return PlanService(store, clock=clock)


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret_key", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "admin_user_ids", "")
    return TEST_JWT_SECRET


@pytest.fixture
def submit(payment_service):
    """Submit a 200.00 payment against the default plan."""

    async def _submit(user_id: str, transaction_id: str, amount: str = "200.00", **kwargs):
        return await payment_service.submit_payment(user_id, Decimal(amount), transaction_id, **kwargs)

    return _submit


@pytest.fixture
def check_entitlement_invariant(store, clock):
    """
    Every Pro user has an approved payment or an active, unexpired subscription.
    Returns the number of Pro users checked.
    """

    async def _check() -> int:
        now = clock()

        async def _read(session):
            pro_users = (
                await session.execute(select(UserEntitlement.user_id).where(UserEntitlement.is_pro.is_(True)))
            ).scalars().all()
            for user_id in pro_users:
                approved = (
                    await session.execute(
                        select(func.count(Payment.id)).where(
                            Payment.user_id == user_id, Payment.status == PAYMENT_APPROVED
                        )
                    )
                ).scalar()
                active = (
                    await session.execute(
                        select(func.count(UserSubscription.id)).where(
                            UserSubscription.user_id == user_id,
                            UserSubscription.status == SUBSCRIPTION_ACTIVE,
                            UserSubscription.end_date > now,
                        )
                    )
                ).scalar()
                assert approved or active, f"user {user_id} is Pro without an approved payment"
            return len(pro_users)

        return await store.run(_read)

    return _check
