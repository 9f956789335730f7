"""
Pytest configuration and fixtures for RenewDesk tests.

Provides helper factories for domain records, a frozen clock, in-memory
stores, and an SQLite-backed session factory for the SQL store tests.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from renewdesk.engine import RenewalEngine
from renewdesk.models import (
    Client,
    Policy,
    PolicyStatus,
    PolicyType,
    Quote,
    Renewal,
    RenewalStatus,
    RiskLevel,
    Task,
    TaskStatus,
)
from renewdesk.stores.memory import MemoryState, memory_stores

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Factory Helpers
# =============================================================================

def make_client(name: str = "Jane Doe", company: str = "Acme Manufacturing") -> Client:
    """Create a Client with required fields."""
    return Client(name=name, company=company)


def make_policy(
    client: Client,
    policy_number: str = "POL-001",
    policy_type: PolicyType = PolicyType.GENERAL_LIABILITY,
    premium: str = "10000",
    days_out: float = 60,
    status: PolicyStatus = PolicyStatus.ACTIVE,
    carrier: str = "Travelers",
) -> Policy:
    """Create a Policy expiring *days_out* days after NOW."""
    return Policy(
        client_id=client.id,
        policy_number=policy_number,
        carrier=carrier,
        type=policy_type,
        premium=Decimal(premium),
        coverage_limit=Decimal("1000000"),
        expiration_date=NOW + timedelta(days=days_out),
        status=status,
    )


def make_renewal(
    policy: Policy,
    status: RenewalStatus = RenewalStatus.PENDING,
    risk_score: RiskLevel = RiskLevel.LOW,
    quotes_received: int = 0,
    due_in_days: float = 25,
    last_touched_at: datetime = None,
    created_at: datetime = None,
) -> Renewal:
    """Create a Renewal for *policy* due *due_in_days* after NOW."""
    return Renewal(
        policy_id=policy.id,
        client_id=policy.client_id,
        due_date=NOW + timedelta(days=due_in_days),
        status=status,
        risk_score=risk_score,
        quotes_received=quotes_received,
        last_touched_at=last_touched_at,
        created_at=created_at or NOW - timedelta(days=1),
    )


def make_task(
    renewal: Renewal,
    name: str = "Request loss runs",
    due_in_days: float = -1,
    status: TaskStatus = TaskStatus.PENDING,
    order: int = 1,
) -> Task:
    """Create a Task for *renewal* due *due_in_days* after NOW."""
    return Task(
        renewal_id=renewal.id,
        name=name,
        due_date=NOW + timedelta(days=due_in_days),
        status=status,
        order=order,
    )


def make_quote(
    renewal: Renewal,
    premium: str,
    carrier: str = "Chubb",
    received_minutes: int = 0,
) -> Quote:
    """Create a Quote for *renewal*; *received_minutes* orders quotes by arrival."""
    return Quote(
        renewal_id=renewal.id,
        carrier=carrier,
        premium=Decimal(premium),
        coverage_limit=Decimal("1000000"),
        received_at=NOW + timedelta(minutes=received_minutes),
    )


class FrozenClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def state():
    return MemoryState()


@pytest.fixture
def stores(state):
    return memory_stores(state)


@pytest.fixture
def engine(stores, clock):
    return RenewalEngine(
        stores,
        clock=clock,
        escalation_window_days=30,
        stale_touch_days=7,
        store_max_retries=2,
        store_retry_wait_seconds=0,
    )


@pytest.fixture
def client(state):
    return state.add_client(make_client())


@pytest.fixture
async def sqlite_session_factory(tmp_path):
    """Session factory over a throwaway SQLite file with the schema created."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from renewdesk.db import Base

    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'renewdesk.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(db_engine, expire_on_commit=False)
    await db_engine.dispose()
