"""SQLAlchemy ORM models matching the RenewDesk schema."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from renewdesk.config import settings
from renewdesk.models import (
    ActivityType,
    PolicyStatus,
    PolicyType,
    QuoteStatus,
    RenewalStatus,
    RiskLevel,
    TaskCategory,
    TaskPriority,
    TaskStatus,
)


# ── Engine & Session ──────────────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker | None = None


def get_engine() -> AsyncEngine:
    """Return (creating if necessary) the shared async engine."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database_url, echo=False, pool_size=10)
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Return the shared session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


# ── Column types ─────────────────────────────────────────────────


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes in, timezone-aware UTC datetimes out.

    Backends without native timezone support (SQLite) hand back naive
    values; those are read as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTCDateTime column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _enum(cls: type) -> SAEnum:
    """Store an enum by its ``value`` as a portable VARCHAR."""
    return SAEnum(
        cls,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


_BLOCKING_STATUS_SQL = "status IN ('pending', 'in_progress', 'quoted')"


class Base(DeclarativeBase):
    pass


# ── Book of business ─────────────────────────────────────────────


class ClientRow(Base):
    __tablename__ = "renewdesk_clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255))


class PolicyRow(Base):
    __tablename__ = "renewdesk_policies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_clients.id", ondelete="CASCADE"), nullable=False
    )
    policy_number: Mapped[str] = mapped_column(String(100), nullable=False)
    carrier: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[PolicyType] = mapped_column(_enum(PolicyType), nullable=False)
    premium: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    coverage_limit: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    expiration_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[PolicyStatus] = mapped_column(
        _enum(PolicyStatus), nullable=False, default=PolicyStatus.ACTIVE
    )

    __table_args__ = (
        Index("ix_renewdesk_policies_status_expiration", "status", "expiration_date"),
    )


# ── Renewal workflow ─────────────────────────────────────────────


class RenewalRow(Base):
    __tablename__ = "renewdesk_renewals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_policies.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_clients.id", ondelete="CASCADE"), nullable=False
    )
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[RenewalStatus] = mapped_column(
        _enum(RenewalStatus), nullable=False, default=RenewalStatus.PENDING
    )
    risk_score: Mapped[RiskLevel] = mapped_column(
        _enum(RiskLevel), nullable=False, default=RiskLevel.LOW
    )
    risk_factors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    insights: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quotes_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_touched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        # At most one open renewal per policy, enforced by the database.
        Index(
            "uq_renewdesk_renewals_open_policy",
            "policy_id",
            unique=True,
            postgresql_where=text(_BLOCKING_STATUS_SQL),
            sqlite_where=text(_BLOCKING_STATUS_SQL),
        ),
        Index("ix_renewdesk_renewals_status_due", "status", "due_date"),
    )


class TaskTemplateRow(Base):
    __tablename__ = "renewdesk_task_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[TaskCategory]] = mapped_column(_enum(TaskCategory))
    priority: Mapped[Optional[TaskPriority]] = mapped_column(_enum(TaskPriority))
    days_before_due: Mapped[int] = mapped_column(Integer, nullable=False)
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)
    policy_type: Mapped[Optional[PolicyType]] = mapped_column(_enum(PolicyType))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TaskRow(Base):
    __tablename__ = "renewdesk_tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    renewal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_renewals.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        _enum(TaskStatus), nullable=False, default=TaskStatus.PENDING
    )
    priority: Mapped[TaskPriority] = mapped_column(
        _enum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM
    )
    category: Mapped[TaskCategory] = mapped_column(
        _enum(TaskCategory), nullable=False, default=TaskCategory.OTHER
    )
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("ix_renewdesk_tasks_status_due", "status", "due_date"),
    )


class QuoteRow(Base):
    __tablename__ = "renewdesk_quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    renewal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_renewals.id", ondelete="CASCADE"), nullable=False
    )
    carrier: Mapped[str] = mapped_column(String(255), nullable=False)
    premium: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    coverage_limit: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    deductible: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    per_occurrence: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    aggregate: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    exclusions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    endorsements: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    price_change: Mapped[Optional[float]] = mapped_column(Float)
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[QuoteStatus] = mapped_column(
        _enum(QuoteStatus), nullable=False, default=QuoteStatus.RECEIVED
    )
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class ActivityRow(Base):
    __tablename__ = "renewdesk_activities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("renewdesk_clients.id", ondelete="CASCADE"), nullable=False
    )
    renewal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("renewdesk_renewals.id", ondelete="SET NULL")
    )
    type: Mapped[ActivityType] = mapped_column(_enum(ActivityType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
