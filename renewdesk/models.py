"""Domain records for the renewal engine.

These pydantic models are what the engine passes between its components and
its store collaborators.  They are deliberately decoupled from the SQLAlchemy
rows in :mod:`renewdesk.db`; each store converts at its own boundary.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PolicyType(str, Enum):
    GENERAL_LIABILITY = "general_liability"
    PROFESSIONAL_LIABILITY = "professional_liability"
    WORKERS_COMPENSATION = "workers_compensation"
    COMMERCIAL_AUTO = "commercial_auto"
    COMMERCIAL_PROPERTY = "commercial_property"
    CYBER_LIABILITY = "cyber_liability"
    DIRECTORS_OFFICERS = "directors_officers"
    EMPLOYMENT_PRACTICES = "employment_practices"
    UMBRELLA = "umbrella"
    OTHER = "other"


class PolicyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RenewalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    QUOTED = "quoted"
    BOUND = "bound"
    LOST = "lost"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    SKIPPED = "skipped"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskCategory(str, Enum):
    DATA_COLLECTION = "data_collection"
    MARKETING = "marketing"
    QUOTE_FOLLOW_UP = "quote_follow_up"
    PROPOSAL = "proposal"
    CLIENT_COMMUNICATION = "client_communication"
    BINDING = "binding"
    POST_BIND = "post_bind"
    OTHER = "other"


class QuoteStatus(str, Enum):
    RECEIVED = "received"
    SELECTED = "selected"


class ActivityType(str, Enum):
    RENEWAL_CREATED = "renewal_created"
    STATUS_CHANGED = "status_changed"
    QUOTE_RECEIVED = "quote_received"
    QUOTE_SELECTED = "quote_selected"
    DOCUMENT_UPLOADED = "document_uploaded"
    EMAIL_SENT = "email_sent"
    TASK_COMPLETED = "task_completed"


# A renewal in one of these statuses blocks opening another for its policy.
BLOCKING_RENEWAL_STATUSES: frozenset[RenewalStatus] = frozenset(
    {RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS, RenewalStatus.QUOTED}
)

# Recording or selecting a quote moves a renewal to quoted only from these.
QUOTABLE_RENEWAL_STATUSES: frozenset[RenewalStatus] = frozenset(
    {RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS}
)

# Tasks in these statuses are swept to overdue once their due date passes.
OPEN_TASK_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
)


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from *now* until *target*, rounded up.

    A target twelve hours away counts as one day; a target already passed
    yields zero or a negative number.
    """
    return math.ceil((target - now).total_seconds() / 86400)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Client(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    name: str
    company: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.company or self.name


class Policy(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    client_id: UUID
    policy_number: str
    carrier: str
    type: PolicyType
    premium: Decimal
    coverage_limit: Decimal
    expiration_date: datetime
    status: PolicyStatus = PolicyStatus.ACTIVE


class Renewal(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    policy_id: UUID
    client_id: UUID
    due_date: datetime
    status: RenewalStatus = RenewalStatus.PENDING
    risk_score: RiskLevel = RiskLevel.LOW
    risk_factors: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    quotes_received: int = 0
    emails_sent: int = 0
    last_touched_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class Task(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    renewal_id: UUID
    name: str
    description: Optional[str] = None
    due_date: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OTHER
    order: int = 0
    completed_at: Optional[datetime] = None


class TaskTemplate(BaseModel):
    """A reusable workflow step, offset a fixed number of days before due.

    ``policy_type`` of ``None`` means the template applies to every policy
    type.  ``priority`` and ``category`` may be left unset; instantiation
    fills in medium / other.
    """

    id: Optional[UUID] = None
    name: str
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    days_before_due: int
    order: int = 0
    policy_type: Optional[PolicyType] = None
    is_active: bool = True


class Quote(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    renewal_id: UUID
    carrier: str
    premium: Decimal
    coverage_limit: Decimal
    deductible: Optional[Decimal] = None
    per_occurrence: Optional[Decimal] = None
    aggregate: Optional[Decimal] = None
    exclusions: list[str] = Field(default_factory=list)
    endorsements: list[str] = Field(default_factory=list)
    price_change: Optional[float] = None
    is_selected: bool = False
    status: QuoteStatus = QuoteStatus.RECEIVED
    received_at: datetime = Field(default_factory=utc_now)


class Activity(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    client_id: UUID
    renewal_id: Optional[UUID] = None
    type: ActivityType
    title: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
