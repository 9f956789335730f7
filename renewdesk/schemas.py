"""Pydantic request/response schemas for the engine's operations.

Request models carry the required-field rules: constructing one with a
missing or empty required field raises :class:`pydantic.ValidationError`
before the engine is ever called.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from renewdesk.models import (
    PolicyType,
    Quote,
    TaskCategory,
    TaskPriority,
)
from renewdesk.quotes.comparator import QuoteComparison


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class NewTaskRequest(BaseModel):
    """A task added by hand to an existing renewal's checklist."""

    renewal_id: UUID
    name: str = Field(..., min_length=1)
    due_date: datetime
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OTHER


class NewTemplateRequest(BaseModel):
    """An operator-defined workflow step.

    Leave ``policy_type`` unset for a template that applies to every policy
    type.
    """

    name: str = Field(..., min_length=1)
    days_before_due: int = Field(..., ge=0)
    description: Optional[str] = None
    policy_type: Optional[PolicyType] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OTHER
    order: int = 0


class NewQuoteRequest(BaseModel):
    """A carrier quote received for a renewal."""

    renewal_id: UUID
    carrier: str = Field(..., min_length=1)
    premium: Decimal = Field(..., gt=0)
    coverage_limit: Decimal = Field(..., gt=0)
    deductible: Optional[Decimal] = Field(default=None, ge=0)
    per_occurrence: Optional[Decimal] = Field(default=None, ge=0)
    aggregate: Optional[Decimal] = Field(default=None, ge=0)
    exclusions: list[str] = Field(default_factory=list)
    endorsements: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RenewalJobResult(BaseModel):
    """Combined outcome of a scan followed by an overdue sweep."""

    renewals_created: int = 0
    renewals_skipped: int = 0
    tasks_marked_overdue: int = 0
    errors: list[str] = Field(default_factory=list)


class TaskProgress(BaseModel):
    total: int = 0
    completed: int = 0
    overdue: int = 0
    in_progress: int = 0
    pending: int = 0
    percent_complete: int = 0


class QuoteRecorded(BaseModel):
    quote: Quote
    comparison: QuoteComparison
