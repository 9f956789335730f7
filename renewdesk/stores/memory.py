"""Process-local store implementations backed by plain dicts.

Every store built by :func:`memory_stores` shares one :class:`MemoryState`,
and every compound read-modify-write runs under that state's
:class:`asyncio.Lock`.  Records are copied on the way in and on the way out so
callers can never mutate stored state by holding a reference.

Used by the test-suite and for dry runs from the CLI; production deployments
use :mod:`renewdesk.stores.sql`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID

from renewdesk.errors import OpenRenewalExists, RecordNotFound
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

logger = logging.getLogger("renewdesk.stores.memory")


class MemoryState:
    """Shared tables for one family of in-memory stores."""

    def __init__(self) -> None:
        self.clients: dict[UUID, Client] = {}
        self.policies: dict[UUID, Policy] = {}
        self.renewals: dict[UUID, Renewal] = {}
        self.templates: list[TaskTemplate] = []
        self.tasks: dict[UUID, Task] = {}
        self.quotes: dict[UUID, Quote] = {}
        self.activities: list[Activity] = []
        self.lock = asyncio.Lock()

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client.model_copy(deep=True)
        return client

    def add_policy(self, policy: Policy) -> Policy:
        self.policies[policy.id] = policy.model_copy(deep=True)
        return policy

    def _blocking(self, policy_id: UUID) -> bool:
        return any(
            r.policy_id == policy_id and r.status in BLOCKING_RENEWAL_STATUSES
            for r in self.renewals.values()
        )


class MemoryPolicyStore(PolicyStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def find_expiring_active(self, window_end: datetime) -> list[Policy]:
        async with self._state.lock:
            matches = [
                p.model_copy(deep=True)
                for p in self._state.policies.values()
                if p.status == PolicyStatus.ACTIVE
                and p.expiration_date <= window_end
                and not self._state._blocking(p.id)
            ]
        return sorted(matches, key=lambda p: p.expiration_date)

    async def find_by_id(self, policy_id: UUID) -> Optional[Policy]:
        policy = self._state.policies.get(policy_id)
        return policy.model_copy(deep=True) if policy else None


class MemoryClientStore(ClientStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def find_by_id(self, client_id: UUID) -> Optional[Client]:
        client = self._state.clients.get(client_id)
        return client.model_copy(deep=True) if client else None


class MemoryRenewalStore(RenewalStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def has_blocking_renewal(self, policy_id: UUID) -> bool:
        async with self._state.lock:
            return self._state._blocking(policy_id)

    async def create(self, renewal: Renewal) -> Renewal:
        async with self._state.lock:
            if self._state._blocking(renewal.policy_id):
                raise OpenRenewalExists(renewal.policy_id)
            self._state.renewals[renewal.id] = renewal.model_copy(deep=True)
        return renewal.model_copy(deep=True)

    async def find_by_id(self, renewal_id: UUID) -> Optional[Renewal]:
        renewal = self._state.renewals.get(renewal_id)
        return renewal.model_copy(deep=True) if renewal else None

    async def find_by_client(self, client_id: UUID) -> list[Renewal]:
        matches = [
            r.model_copy(deep=True)
            for r in self._state.renewals.values()
            if r.client_id == client_id
        ]
        return sorted(matches, key=lambda r: r.due_date)

    async def find_open_due_before(self, due_by: datetime) -> list[Renewal]:
        open_statuses = {RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS}
        matches = [
            r.model_copy(deep=True)
            for r in self._state.renewals.values()
            if r.status in open_statuses and r.due_date <= due_by
        ]
        return sorted(matches, key=lambda r: r.due_date)

    def _stored(self, renewal_id: UUID) -> Renewal:
        renewal = self._state.renewals.get(renewal_id)
        if renewal is None:
            raise RecordNotFound("Renewal", renewal_id)
        return renewal

    async def touch(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        async with self._state.lock:
            renewal = self._stored(renewal_id)
            renewal.last_touched_at = touched_at
            return renewal.model_copy(deep=True)

    async def record_quote_received(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        async with self._state.lock:
            renewal = self._stored(renewal_id)
            renewal.quotes_received += 1
            if renewal.status in QUOTABLE_RENEWAL_STATUSES:
                renewal.status = RenewalStatus.QUOTED
            renewal.last_touched_at = touched_at
            return renewal.model_copy(deep=True)

    async def mark_quoted(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        async with self._state.lock:
            renewal = self._stored(renewal_id)
            if renewal.status in QUOTABLE_RENEWAL_STATUSES:
                renewal.status = RenewalStatus.QUOTED
            renewal.last_touched_at = touched_at
            return renewal.model_copy(deep=True)

    async def record_quote_removed(self, renewal_id: UUID) -> Optional[Renewal]:
        async with self._state.lock:
            renewal = self._state.renewals.get(renewal_id)
            if renewal is None:
                return None
            renewal.quotes_received = max(0, renewal.quotes_received - 1)
            return renewal.model_copy(deep=True)

    async def record_email_sent(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        async with self._state.lock:
            renewal = self._stored(renewal_id)
            renewal.emails_sent += 1
            renewal.last_touched_at = touched_at
            return renewal.model_copy(deep=True)

    async def set_status(
        self,
        renewal_id: UUID,
        status: RenewalStatus,
        touched_at: datetime,
        risk_score: Optional[RiskLevel] = None,
    ) -> Renewal:
        async with self._state.lock:
            renewal = self._stored(renewal_id)
            if (
                status in BLOCKING_RENEWAL_STATUSES
                and renewal.status not in BLOCKING_RENEWAL_STATUSES
                and self._state._blocking(renewal.policy_id)
            ):
                raise OpenRenewalExists(renewal.policy_id)
            renewal.status = status
            if risk_score is not None:
                renewal.risk_score = risk_score
            if status == RenewalStatus.BOUND:
                renewal.completed_at = touched_at
            renewal.last_touched_at = touched_at
            return renewal.model_copy(deep=True)


class MemoryTaskTemplateStore(TaskTemplateStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def find_active(self, policy_type: PolicyType) -> list[TaskTemplate]:
        matches = [
            t.model_copy(deep=True)
            for t in self._state.templates
            if t.is_active and t.policy_type in (policy_type, None)
        ]
        return sorted(matches, key=lambda t: t.order)

    async def create(self, template: TaskTemplate) -> TaskTemplate:
        stored = template.model_copy(update={"id": template.id or uuid.uuid4()}, deep=True)
        async with self._state.lock:
            self._state.templates.append(stored)
        return stored.model_copy(deep=True)

    async def count(self) -> int:
        return len(self._state.templates)


class MemoryTaskStore(TaskStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def create_many(self, tasks: list[Task]) -> int:
        async with self._state.lock:
            for task in tasks:
                self._state.tasks[task.id] = task.model_copy(deep=True)
        return len(tasks)

    async def mark_overdue(self, before: datetime) -> int:
        moved = 0
        async with self._state.lock:
            for task in self._state.tasks.values():
                if task.due_date < before and task.status in OPEN_TASK_STATUSES:
                    task.status = TaskStatus.OVERDUE
                    moved += 1
        return moved

    async def find_overdue(self, renewal_id: UUID) -> list[Task]:
        return [
            t.model_copy(deep=True)
            for t in self._state.tasks.values()
            if t.renewal_id == renewal_id and t.status == TaskStatus.OVERDUE
        ]

    async def find_by_renewal(self, renewal_id: UUID) -> list[Task]:
        matches = [
            t.model_copy(deep=True)
            for t in self._state.tasks.values()
            if t.renewal_id == renewal_id
        ]
        return sorted(matches, key=lambda t: (t.order, t.due_date))

    async def find_by_id(self, task_id: UUID) -> Optional[Task]:
        task = self._state.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update(self, task: Task) -> Task:
        async with self._state.lock:
            if task.id not in self._state.tasks:
                raise RecordNotFound("Task", task.id)
            self._state.tasks[task.id] = task.model_copy(deep=True)
        return task

    async def max_order(self, renewal_id: UUID) -> Optional[int]:
        orders = [
            t.order for t in self._state.tasks.values() if t.renewal_id == renewal_id
        ]
        return max(orders) if orders else None


class MemoryQuoteStore(QuoteStore):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def find_by_renewal(self, renewal_id: UUID) -> list[Quote]:
        matches = [
            q.model_copy(deep=True)
            for q in self._state.quotes.values()
            if q.renewal_id == renewal_id
        ]
        return sorted(matches, key=lambda q: q.received_at)

    async def find_by_id(self, quote_id: UUID) -> Optional[Quote]:
        quote = self._state.quotes.get(quote_id)
        return quote.model_copy(deep=True) if quote else None

    async def create(self, quote: Quote) -> Quote:
        async with self._state.lock:
            self._state.quotes[quote.id] = quote.model_copy(deep=True)
        return quote

    async def delete(self, quote_id: UUID) -> None:
        async with self._state.lock:
            if self._state.quotes.pop(quote_id, None) is None:
                raise RecordNotFound("Quote", quote_id)

    async def select_exclusive(self, quote_id: UUID, renewal_id: UUID) -> Quote:
        async with self._state.lock:
            target = self._state.quotes.get(quote_id)
            if target is None or target.renewal_id != renewal_id:
                raise RecordNotFound("Quote", quote_id)
            for quote in self._state.quotes.values():
                if quote.renewal_id == renewal_id:
                    quote.is_selected = False
                    quote.status = QuoteStatus.RECEIVED
            target.is_selected = True
            target.status = QuoteStatus.SELECTED
            return target.model_copy(deep=True)


class MemoryActivityLog(ActivityLog):
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def append(self, entry: Activity) -> None:
        async with self._state.lock:
            self._state.activities.append(entry.model_copy(deep=True))
        logger.debug("Activity appended: type=%s title=%s", entry.type.value, entry.title)


def memory_stores(state: MemoryState | None = None) -> Stores:
    """Build a :class:`Stores` bundle over one shared :class:`MemoryState`."""
    state = state or MemoryState()
    return Stores(
        policies=MemoryPolicyStore(state),
        clients=MemoryClientStore(state),
        renewals=MemoryRenewalStore(state),
        templates=MemoryTaskTemplateStore(state),
        tasks=MemoryTaskStore(state),
        quotes=MemoryQuoteStore(state),
        activities=MemoryActivityLog(state),
    )
