"""SQLAlchemy asyncio implementations of the RenewDesk store interfaces.

Every store takes an :class:`~sqlalchemy.ext.asyncio.async_sessionmaker` and
opens a short-lived session per call.  Connection-level driver failures are
re-raised as :class:`~renewdesk.errors.StoreUnavailable` so the engine can
retry batch query steps without knowing which database sits underneath.

Two invariants are pushed down into the database rather than trusted to
in-process checks:

- the partial unique index ``uq_renewdesk_renewals_open_policy`` allows only
  one pending / in-progress / quoted renewal per policy, and a violation is
  translated into :class:`~renewdesk.errors.OpenRenewalExists`;
- quote selection clears and sets the flag inside one transaction;
- renewal counters and status change through single ``UPDATE`` statements
  that compute the new value in the database.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Optional
from uuid import UUID

from sqlalchemy import case, delete, exists, func, literal, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renewdesk.db import (
    ActivityRow,
    ClientRow,
    PolicyRow,
    QuoteRow,
    RenewalRow,
    TaskRow,
    TaskTemplateRow,
    get_session_factory,
)
from renewdesk.errors import OpenRenewalExists, RecordNotFound, StoreUnavailable
from renewdesk.models import (
    BLOCKING_RENEWAL_STATUSES,
    OPEN_TASK_STATUSES,
    QUOTABLE_RENEWAL_STATUSES,
    Activity,
    Client,
    Policy,
    PolicyStatus,
    PolicyType,
    Quote,
    QuoteStatus,
    Renewal,
    RenewalStatus,
    RiskLevel,
    Task,
    TaskStatus,
    TaskTemplate,
)
from renewdesk.stores.base import (
    ActivityLog,
    ClientStore,
    PolicyStore,
    QuoteStore,
    RenewalStore,
    Stores,
    TaskStore,
    TaskTemplateStore,
)

logger = logging.getLogger("renewdesk.stores.sql")


class _SQLStore:
    """Shared session handling for the concrete stores below."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            logger.error("Store %s unavailable: %s", type(self).__name__, exc)
            raise StoreUnavailable(str(exc)) from exc


# ── Policies & clients ───────────────────────────────────────────


class SQLPolicyStore(_SQLStore, PolicyStore):
    async def find_expiring_active(self, window_end: datetime) -> list[Policy]:
        blocking = exists().where(
            RenewalRow.policy_id == PolicyRow.id,
            RenewalRow.status.in_(list(BLOCKING_RENEWAL_STATUSES)),
        )
        stmt = (
            select(PolicyRow)
            .where(
                PolicyRow.status == PolicyStatus.ACTIVE,
                PolicyRow.expiration_date <= window_end,
                ~blocking,
            )
            .order_by(PolicyRow.expiration_date)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Policy.model_validate(row, from_attributes=True) for row in rows]

    async def find_by_id(self, policy_id: UUID) -> Optional[Policy]:
        async with self._session() as session:
            row = await session.get(PolicyRow, policy_id)
        return Policy.model_validate(row, from_attributes=True) if row else None


class SQLClientStore(_SQLStore, ClientStore):
    async def find_by_id(self, client_id: UUID) -> Optional[Client]:
        async with self._session() as session:
            row = await session.get(ClientRow, client_id)
        return Client.model_validate(row, from_attributes=True) if row else None


# ── Renewals ─────────────────────────────────────────────────────


class SQLRenewalStore(_SQLStore, RenewalStore):
    async def has_blocking_renewal(self, policy_id: UUID) -> bool:
        stmt = select(
            exists().where(
                RenewalRow.policy_id == policy_id,
                RenewalRow.status.in_(list(BLOCKING_RENEWAL_STATUSES)),
            )
        )
        async with self._session() as session:
            return bool(await session.scalar(stmt))

    async def create(self, renewal: Renewal) -> Renewal:
        try:
            async with self._session() as session:
                async with session.begin():
                    session.add(RenewalRow(**renewal.model_dump()))
        except IntegrityError as exc:
            # The partial unique index fired; anything else is a real fault.
            if await self.has_blocking_renewal(renewal.policy_id):
                raise OpenRenewalExists(renewal.policy_id) from exc
            raise
        return renewal

    async def find_by_id(self, renewal_id: UUID) -> Optional[Renewal]:
        async with self._session() as session:
            row = await session.get(RenewalRow, renewal_id)
        return Renewal.model_validate(row, from_attributes=True) if row else None

    async def find_by_client(self, client_id: UUID) -> list[Renewal]:
        stmt = (
            select(RenewalRow)
            .where(RenewalRow.client_id == client_id)
            .order_by(RenewalRow.due_date)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Renewal.model_validate(row, from_attributes=True) for row in rows]

    async def find_open_due_before(self, due_by: datetime) -> list[Renewal]:
        stmt = (
            select(RenewalRow)
            .where(
                RenewalRow.status.in_([RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS]),
                RenewalRow.due_date <= due_by,
            )
            .order_by(RenewalRow.due_date)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Renewal.model_validate(row, from_attributes=True) for row in rows]

    async def _apply(
        self, renewal_id: UUID, required: bool = True, **values: Any
    ) -> Optional[Renewal]:
        """Run one ``UPDATE ... WHERE id = :id`` and return the fresh row."""
        stmt = (
            update(RenewalRow)
            .where(RenewalRow.id == renewal_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if not result.rowcount:
                    if required:
                        raise RecordNotFound("Renewal", renewal_id)
                    return None
                row = await session.get(RenewalRow, renewal_id)
                renewal = Renewal.model_validate(row, from_attributes=True)
        return renewal

    @staticmethod
    def _quoted_if_open() -> Any:
        status = RenewalRow.__table__.c.status
        return case(
            (
                status.in_(list(QUOTABLE_RENEWAL_STATUSES)),
                literal(RenewalStatus.QUOTED, status.type),
            ),
            else_=status,
        )

    async def touch(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        return await self._apply(renewal_id, last_touched_at=touched_at)

    async def record_quote_received(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        return await self._apply(
            renewal_id,
            quotes_received=RenewalRow.quotes_received + 1,
            status=self._quoted_if_open(),
            last_touched_at=touched_at,
        )

    async def mark_quoted(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        return await self._apply(
            renewal_id, status=self._quoted_if_open(), last_touched_at=touched_at
        )

    async def record_quote_removed(self, renewal_id: UUID) -> Optional[Renewal]:
        return await self._apply(
            renewal_id,
            required=False,
            quotes_received=case(
                (RenewalRow.quotes_received > 0, RenewalRow.quotes_received - 1),
                else_=0,
            ),
        )

    async def record_email_sent(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        return await self._apply(
            renewal_id,
            emails_sent=RenewalRow.emails_sent + 1,
            last_touched_at=touched_at,
        )

    async def set_status(
        self,
        renewal_id: UUID,
        status: RenewalStatus,
        touched_at: datetime,
        risk_score: Optional[RiskLevel] = None,
    ) -> Renewal:
        values: dict[str, Any] = {"status": status, "last_touched_at": touched_at}
        if risk_score is not None:
            values["risk_score"] = risk_score
        if status == RenewalStatus.BOUND:
            values["completed_at"] = touched_at
        try:
            return await self._apply(renewal_id, **values)
        except IntegrityError as exc:
            # Reopening collided with another open renewal on the policy.
            existing = await self.find_by_id(renewal_id)
            if existing is not None:
                raise OpenRenewalExists(existing.policy_id) from exc
            raise


# ── Templates & tasks ────────────────────────────────────────────


class SQLTaskTemplateStore(_SQLStore, TaskTemplateStore):
    async def find_active(self, policy_type: PolicyType) -> list[TaskTemplate]:
        stmt = (
            select(TaskTemplateRow)
            .where(
                TaskTemplateRow.is_active.is_(True),
                (TaskTemplateRow.policy_type == policy_type)
                | TaskTemplateRow.policy_type.is_(None),
            )
            .order_by(TaskTemplateRow.order)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [TaskTemplate.model_validate(row, from_attributes=True) for row in rows]

    async def create(self, template: TaskTemplate) -> TaskTemplate:
        template = template.model_copy(update={"id": template.id or uuid.uuid4()})
        row = TaskTemplateRow(**template.model_dump())
        async with self._session() as session:
            async with session.begin():
                session.add(row)
        return template

    async def count(self) -> int:
        async with self._session() as session:
            return int(await session.scalar(select(func.count(TaskTemplateRow.id))) or 0)


class SQLTaskStore(_SQLStore, TaskStore):
    async def create_many(self, tasks: list[Task]) -> int:
        if not tasks:
            return 0
        async with self._session() as session:
            async with session.begin():
                session.add_all([TaskRow(**task.model_dump()) for task in tasks])
        return len(tasks)

    async def mark_overdue(self, before: datetime) -> int:
        stmt = (
            update(TaskRow)
            .where(TaskRow.due_date < before, TaskRow.status.in_(list(OPEN_TASK_STATUSES)))
            .values(status=TaskStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(stmt)
                moved = result.rowcount or 0
        return moved

    async def find_overdue(self, renewal_id: UUID) -> list[Task]:
        stmt = select(TaskRow).where(
            TaskRow.renewal_id == renewal_id, TaskRow.status == TaskStatus.OVERDUE
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Task.model_validate(row, from_attributes=True) for row in rows]

    async def find_by_renewal(self, renewal_id: UUID) -> list[Task]:
        stmt = (
            select(TaskRow)
            .where(TaskRow.renewal_id == renewal_id)
            .order_by(TaskRow.order, TaskRow.due_date)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Task.model_validate(row, from_attributes=True) for row in rows]

    async def find_by_id(self, task_id: UUID) -> Optional[Task]:
        async with self._session() as session:
            row = await session.get(TaskRow, task_id)
        return Task.model_validate(row, from_attributes=True) if row else None

    async def update(self, task: Task) -> Task:
        async with self._session() as session:
            async with session.begin():
                row = await session.get(TaskRow, task.id)
                if row is None:
                    raise RecordNotFound("Task", task.id)
                for field, value in task.model_dump(exclude={"id"}).items():
                    setattr(row, field, value)
        return task

    async def max_order(self, renewal_id: UUID) -> Optional[int]:
        stmt = select(func.max(TaskRow.order)).where(TaskRow.renewal_id == renewal_id)
        async with self._session() as session:
            return await session.scalar(stmt)


# ── Quotes ───────────────────────────────────────────────────────


class SQLQuoteStore(_SQLStore, QuoteStore):
    async def find_by_renewal(self, renewal_id: UUID) -> list[Quote]:
        stmt = (
            select(QuoteRow)
            .where(QuoteRow.renewal_id == renewal_id)
            .order_by(QuoteRow.received_at)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
        return [Quote.model_validate(row, from_attributes=True) for row in rows]

    async def find_by_id(self, quote_id: UUID) -> Optional[Quote]:
        async with self._session() as session:
            row = await session.get(QuoteRow, quote_id)
        return Quote.model_validate(row, from_attributes=True) if row else None

    async def create(self, quote: Quote) -> Quote:
        async with self._session() as session:
            async with session.begin():
                session.add(QuoteRow(**quote.model_dump()))
        return quote

    async def delete(self, quote_id: UUID) -> None:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(QuoteRow).where(QuoteRow.id == quote_id))
                if not result.rowcount:
                    raise RecordNotFound("Quote", quote_id)

    async def select_exclusive(self, quote_id: UUID, renewal_id: UUID) -> Quote:
        async with self._session() as session:
            async with session.begin():
                # Lock the sibling set so concurrent selections serialise.
                siblings = (
                    await session.scalars(
                        select(QuoteRow)
                        .where(QuoteRow.renewal_id == renewal_id)
                        .with_for_update()
                    )
                ).all()
                target = next((q for q in siblings if q.id == quote_id), None)
                if target is None:
                    raise RecordNotFound("Quote", quote_id)
                for row in siblings:
                    row.is_selected = False
                    row.status = QuoteStatus.RECEIVED
                target.is_selected = True
                target.status = QuoteStatus.SELECTED
                selected = Quote.model_validate(target, from_attributes=True)
        return selected


# ── Activity log ─────────────────────────────────────────────────


class SQLActivityLog(_SQLStore, ActivityLog):
    async def append(self, entry: Activity) -> None:
        data = entry.model_dump(exclude={"metadata"})
        async with self._session() as session:
            async with session.begin():
                session.add(ActivityRow(**data, details=entry.metadata))


def sql_stores(session_factory: async_sessionmaker | None = None) -> Stores:
    """Build a :class:`Stores` bundle over one session factory.

    Defaults to the shared factory from :func:`renewdesk.db.get_session_factory`.
    """
    factory = session_factory or get_session_factory()
    return Stores(
        policies=SQLPolicyStore(factory),
        clients=SQLClientStore(factory),
        renewals=SQLRenewalStore(factory),
        templates=SQLTaskTemplateStore(factory),
        tasks=SQLTaskStore(factory),
        quotes=SQLQuoteStore(factory),
        activities=SQLActivityLog(factory),
    )
