"""Abstract store interfaces the renewal engine reads and writes through.

The engine never touches a database directly.  Each collaborator below is an
:class:`abc.ABC`; concrete implementations live in :mod:`renewdesk.stores.sql`
(SQLAlchemy asyncio) and :mod:`renewdesk.stores.memory` (process-local).
Stores are injected into the engine, so their lifetime and locking discipline
belong to whoever builds the :class:`Stores` bundle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from renewdesk.models import (
    Activity,
    Client,
    Policy,
    PolicyType,
    Quote,
    Renewal,
    RenewalStatus,
    RiskLevel,
    Task,
    TaskTemplate,
)


class PolicyStore(ABC):
    @abstractmethod
    async def find_expiring_active(self, window_end: datetime) -> list[Policy]:
        """Active policies expiring on or before *window_end* that have no
        renewal in a blocking status."""

    @abstractmethod
    async def find_by_id(self, policy_id: UUID) -> Optional[Policy]: ...


class ClientStore(ABC):
    @abstractmethod
    async def find_by_id(self, client_id: UUID) -> Optional[Client]: ...


class RenewalStore(ABC):
    @abstractmethod
    async def has_blocking_renewal(self, policy_id: UUID) -> bool: ...

    @abstractmethod
    async def create(self, renewal: Renewal) -> Renewal:
        """Insert *renewal* unless the policy already has a blocking renewal.

        The check and the insert are one atomic step.

        Raises:
            OpenRenewalExists: a pending / in-progress / quoted renewal
                already exists for ``renewal.policy_id``.
        """

    @abstractmethod
    async def find_by_id(self, renewal_id: UUID) -> Optional[Renewal]: ...

    @abstractmethod
    async def find_by_client(self, client_id: UUID) -> list[Renewal]: ...

    @abstractmethod
    async def find_open_due_before(self, due_by: datetime) -> list[Renewal]:
        """Pending or in-progress renewals due on or before *due_by*, soonest first."""

    # Targeted updates change only the columns they name, in one statement.

    @abstractmethod
    async def touch(self, renewal_id: UUID, touched_at: datetime) -> Renewal: ...

    @abstractmethod
    async def record_quote_received(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        """Increment ``quotes_received``, move pending / in-progress to quoted,
        and touch the renewal."""

    @abstractmethod
    async def mark_quoted(self, renewal_id: UUID, touched_at: datetime) -> Renewal:
        """Move pending / in-progress to quoted and touch the renewal."""

    @abstractmethod
    async def record_quote_removed(self, renewal_id: UUID) -> Optional[Renewal]:
        """Decrement ``quotes_received``, never below zero."""

    @abstractmethod
    async def record_email_sent(self, renewal_id: UUID, touched_at: datetime) -> Renewal: ...

    @abstractmethod
    async def set_status(
        self,
        renewal_id: UUID,
        status: RenewalStatus,
        touched_at: datetime,
        risk_score: Optional[RiskLevel] = None,
    ) -> Renewal:
        """Change status (and optionally risk level) and touch the renewal.

        Moving to bound stamps ``completed_at``.

        Raises:
            RecordNotFound: no renewal with *renewal_id*.
            OpenRenewalExists: reopening would give the policy a second open
                renewal.
        """


class TaskTemplateStore(ABC):
    @abstractmethod
    async def find_active(self, policy_type: PolicyType) -> list[TaskTemplate]:
        """Active templates scoped to *policy_type* or system-wide, by ``order``."""

    @abstractmethod
    async def create(self, template: TaskTemplate) -> TaskTemplate: ...

    @abstractmethod
    async def count(self) -> int: ...


class TaskStore(ABC):
    @abstractmethod
    async def create_many(self, tasks: list[Task]) -> int: ...

    @abstractmethod
    async def mark_overdue(self, before: datetime) -> int:
        """Move pending / in-progress tasks due strictly before *before* to
        overdue and return how many moved."""

    @abstractmethod
    async def find_overdue(self, renewal_id: UUID) -> list[Task]: ...

    @abstractmethod
    async def find_by_renewal(self, renewal_id: UUID) -> list[Task]:
        """All tasks for a renewal ordered by ``order`` then due date."""

    @abstractmethod
    async def find_by_id(self, task_id: UUID) -> Optional[Task]: ...

    @abstractmethod
    async def update(self, task: Task) -> Task: ...

    @abstractmethod
    async def max_order(self, renewal_id: UUID) -> Optional[int]: ...


class QuoteStore(ABC):
    @abstractmethod
    async def find_by_renewal(self, renewal_id: UUID) -> list[Quote]:
        """Quotes for a renewal in the order they were received."""

    @abstractmethod
    async def find_by_id(self, quote_id: UUID) -> Optional[Quote]: ...

    @abstractmethod
    async def create(self, quote: Quote) -> Quote: ...

    @abstractmethod
    async def delete(self, quote_id: UUID) -> None: ...

    @abstractmethod
    async def select_exclusive(self, quote_id: UUID, renewal_id: UUID) -> Quote:
        """Select one quote and clear the flag on its siblings in one step.

        No reader may observe zero or two selected quotes mid-update.
        """


class ActivityLog(ABC):
    @abstractmethod
    async def append(self, entry: Activity) -> None: ...


@dataclass
class Stores:
    """The full set of collaborators one engine instance works against."""

    policies: PolicyStore
    clients: ClientStore
    renewals: RenewalStore
    templates: TaskTemplateStore
    tasks: TaskStore
    quotes: QuoteStore
    activities: ActivityLog
