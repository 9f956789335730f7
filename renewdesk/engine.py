"""RenewDesk engine — the single entry point callers outside the core use.

:class:`RenewalEngine` wires the lifecycle components to one injected
:class:`~renewdesk.stores.base.Stores` bundle and exposes:

Batch operations (result structures, never raise for per-item faults)
    run_expiring_policy_scan, sweep_overdue_tasks, run_renewal_job

Queries
    list_escalations, compare_quotes, compare_quote_set, task_progress,
    score_risk

Record-level actions
    update_renewal_status, record_quote, select_quote, delete_quote,
    add_task, update_task_status, record_email_sent, create_template,
    seed_default_templates

Typical usage::

    engine = RenewalEngine(sql_stores())
    result = await engine.run_expiring_policy_scan(90)
    escalations = await engine.list_escalations()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence
from uuid import UUID

from renewdesk.errors import InvalidRequest, RecordNotFound
from renewdesk.lifecycle.defaults import DEFAULT_TASK_TEMPLATES
from renewdesk.lifecycle.escalation import EscalationDetector, EscalationEntry
from renewdesk.lifecycle.opener import RenewalOpener
from renewdesk.lifecycle.resolver import TaskTemplateResolver
from renewdesk.lifecycle.risk import RiskAssessment, RiskThresholds, score_risk
from renewdesk.lifecycle.scanner import ExpiringPolicyScanner, ScanResult
from renewdesk.lifecycle.sweeper import OverdueSweeper
from renewdesk.models import (
    Activity,
    ActivityType,
    Policy,
    Quote,
    QuoteStatus,
    Renewal,
    RenewalStatus,
    RiskLevel,
    Task,
    TaskStatus,
    TaskTemplate,
    utc_now,
)
from renewdesk.quotes.comparator import QuoteComparison, compare_quotes, price_change
from renewdesk.schemas import (
    NewQuoteRequest,
    NewTaskRequest,
    NewTemplateRequest,
    QuoteRecorded,
    RenewalJobResult,
    TaskProgress,
)
from renewdesk.stores.base import Stores

logger = logging.getLogger("renewdesk.engine")


class RenewalEngine:
    """Renewal lifecycle and workflow orchestration over injected stores."""

    def __init__(
        self,
        stores: Stores,
        thresholds: RiskThresholds | None = None,
        default_templates: Sequence[TaskTemplate] = DEFAULT_TASK_TEMPLATES,
        clock: Callable[[], datetime] = utc_now,
        escalation_window_days: int | None = None,
        stale_touch_days: int | None = None,
        store_max_retries: int | None = None,
        store_retry_wait_seconds: float | None = None,
    ) -> None:
        self.stores = stores
        self.thresholds = thresholds or RiskThresholds()
        self._clock = clock
        self._default_templates = tuple(default_templates)

        self.resolver = TaskTemplateResolver(stores.templates, self._default_templates)
        self.opener = RenewalOpener(stores, self.resolver, self.thresholds)
        self.scanner = ExpiringPolicyScanner(
            stores.policies,
            self.opener,
            clock=clock,
            max_retries=store_max_retries,
            retry_wait_seconds=store_retry_wait_seconds,
        )
        self.sweeper = OverdueSweeper(stores.tasks, clock=clock)
        self.escalations = EscalationDetector(
            stores,
            clock=clock,
            window_days=escalation_window_days,
            stale_days=stale_touch_days,
        )

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def run_expiring_policy_scan(self, lookahead_days: int | None = None) -> ScanResult:
        return await self.scanner.run(lookahead_days)

    async def sweep_overdue_tasks(self) -> int:
        return await self.sweeper.sweep()

    async def run_renewal_job(self, lookahead_days: int | None = None) -> RenewalJobResult:
        """Open renewals for expiring policies, then sweep overdue tasks."""
        scan = await self.run_expiring_policy_scan(lookahead_days)
        errors = list(scan.errors)
        try:
            overdue = await self.sweep_overdue_tasks()
        except Exception as exc:
            logger.exception("Overdue sweep failed during renewal job")
            errors.append(f"Sweep error: {exc}")
            overdue = 0
        return RenewalJobResult(
            renewals_created=scan.created,
            renewals_skipped=scan.skipped,
            tasks_marked_overdue=overdue,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def score_risk(self, policy: Policy, days_until_expiry: int) -> RiskAssessment:
        return score_risk(policy.type, policy.premium, days_until_expiry, self.thresholds)

    async def list_escalations(self) -> list[EscalationEntry]:
        return await self.escalations.list_escalations()

    async def compare_quotes(self, renewal_id: UUID) -> QuoteComparison:
        """Compare every quote received for a renewal against its expiring premium."""
        _, policy = await self._renewal_with_policy(renewal_id)
        quotes = await self.stores.quotes.find_by_renewal(renewal_id)
        return compare_quotes(policy.premium, quotes)

    async def compare_quote_set(self, quote_ids: Sequence[UUID]) -> QuoteComparison:
        """Compare a hand-picked set of at least two quotes from one renewal."""
        unique_ids = list(dict.fromkeys(quote_ids))
        if len(unique_ids) < 2:
            raise InvalidRequest("At least 2 quote ids are required for comparison")

        quotes: list[Quote] = []
        for quote_id in unique_ids:
            quote = await self.stores.quotes.find_by_id(quote_id)
            if quote is None:
                raise RecordNotFound("Quote", quote_id)
            quotes.append(quote)

        renewal_ids = {q.renewal_id for q in quotes}
        if len(renewal_ids) != 1:
            raise InvalidRequest("Quotes being compared must belong to the same renewal")

        _, policy = await self._renewal_with_policy(quotes[0].renewal_id)
        return compare_quotes(policy.premium, quotes)

    async def task_progress(self, renewal_id: UUID) -> TaskProgress:
        tasks = await self.stores.tasks.find_by_renewal(renewal_id)
        total = len(tasks)
        completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
        overdue = sum(1 for t in tasks if t.status == TaskStatus.OVERDUE)
        in_progress = sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS)
        return TaskProgress(
            total=total,
            completed=completed,
            overdue=overdue,
            in_progress=in_progress,
            pending=total - completed - overdue - in_progress,
            percent_complete=round(completed / total * 100) if total else 0,
        )

    # ------------------------------------------------------------------
    # Renewals
    # ------------------------------------------------------------------

    async def update_renewal_status(
        self,
        renewal_id: UUID,
        status: RenewalStatus | None = None,
        risk_score: RiskLevel | None = None,
    ) -> Renewal:
        """Move a renewal to *status* and/or override its risk level.

        Either change touches the renewal.  Binding stamps ``completed_at``;
        moving to bound, lost or cancelled releases the policy for the next
        scan.  A status change is written to the activity log.

        Raises:
            RecordNotFound: unknown renewal.
            InvalidRequest: neither *status* nor *risk_score* given.
            OpenRenewalExists: reopening would give the policy a second open
                renewal.
        """
        if status is None and risk_score is None:
            raise InvalidRequest("A status or risk score is required")
        existing = await self._renewal(renewal_id)
        now = self._clock()

        updated = await self.stores.renewals.set_status(
            renewal_id, status or existing.status, now, risk_score=risk_score
        )

        if updated.status != existing.status:
            await self.stores.activities.append(
                Activity(
                    client_id=updated.client_id,
                    renewal_id=updated.id,
                    type=ActivityType.STATUS_CHANGED,
                    title="Status Changed",
                    description=(
                        f"Renewal status changed from {existing.status.value} "
                        f"to {updated.status.value}"
                    ),
                    metadata={
                        "from": existing.status.value,
                        "to": updated.status.value,
                    },
                    created_at=now,
                )
            )
            logger.info(
                "Renewal %s status %s -> %s",
                updated.id,
                existing.status.value,
                updated.status.value,
            )
        return updated

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def record_quote(self, request: NewQuoteRequest) -> QuoteRecorded:
        renewal, policy = await self._renewal_with_policy(request.renewal_id)
        now = self._clock()

        quote = Quote(
            **request.model_dump(),
            price_change=price_change(request.premium, policy.premium),
            status=QuoteStatus.RECEIVED,
            received_at=now,
        )
        await self.stores.quotes.create(quote)

        renewal = await self.stores.renewals.record_quote_received(renewal.id, now)

        await self.stores.activities.append(
            Activity(
                client_id=renewal.client_id,
                renewal_id=renewal.id,
                type=ActivityType.QUOTE_RECEIVED,
                title="Quote Received",
                description=f"Received quote from {quote.carrier} for ${quote.premium:,.2f}",
                metadata={
                    "quote_id": str(quote.id),
                    "carrier": quote.carrier,
                    "premium": str(quote.premium),
                },
                created_at=now,
            )
        )
        logger.info(
            "Recorded quote carrier=%s premium=%s for renewal %s",
            quote.carrier,
            quote.premium,
            renewal.id,
        )
        quotes = await self.stores.quotes.find_by_renewal(renewal.id)
        return QuoteRecorded(quote=quote, comparison=compare_quotes(policy.premium, quotes))

    async def select_quote(self, quote_id: UUID) -> Quote:
        """Mark one quote as the chosen one; its siblings are deselected atomically."""
        existing = await self.stores.quotes.find_by_id(quote_id)
        if existing is None:
            raise RecordNotFound("Quote", quote_id)
        renewal = await self._renewal(existing.renewal_id)
        now = self._clock()

        selected = await self.stores.quotes.select_exclusive(quote_id, existing.renewal_id)

        renewal = await self.stores.renewals.mark_quoted(renewal.id, now)

        await self.stores.activities.append(
            Activity(
                client_id=renewal.client_id,
                renewal_id=renewal.id,
                type=ActivityType.QUOTE_SELECTED,
                title="Quote Selected",
                description=f"Selected {selected.carrier} quote for ${selected.premium:,.2f}",
                metadata={"quote_id": str(selected.id), "carrier": selected.carrier},
                created_at=now,
            )
        )
        logger.info("Selected quote %s for renewal %s", selected.id, renewal.id)
        return selected

    async def delete_quote(self, quote_id: UUID) -> None:
        existing = await self.stores.quotes.find_by_id(quote_id)
        if existing is None:
            raise RecordNotFound("Quote", quote_id)
        await self.stores.quotes.delete(quote_id)
        await self.stores.renewals.record_quote_removed(existing.renewal_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def add_task(self, request: NewTaskRequest) -> Task:
        """Append a manual task after the renewal's current last task."""
        await self._renewal(request.renewal_id)
        current_max = await self.stores.tasks.max_order(request.renewal_id)
        task = Task(
            renewal_id=request.renewal_id,
            name=request.name,
            description=request.description,
            due_date=request.due_date,
            priority=request.priority,
            category=request.category,
            order=(current_max or 0) + 1,
        )
        await self.stores.tasks.create_many([task])
        return task

    async def update_task_status(self, task_id: UUID, status: TaskStatus) -> Task:
        task = await self.stores.tasks.find_by_id(task_id)
        if task is None:
            raise RecordNotFound("Task", task_id)
        renewal = await self._renewal(task.renewal_id)
        now = self._clock()

        newly_completed = status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED
        task.status = status
        if newly_completed:
            task.completed_at = now
        await self.stores.tasks.update(task)

        await self.stores.renewals.touch(renewal.id, now)

        if newly_completed:
            await self.stores.activities.append(
                Activity(
                    client_id=renewal.client_id,
                    renewal_id=renewal.id,
                    type=ActivityType.TASK_COMPLETED,
                    title="Task Completed",
                    description=f"Completed task: {task.name}",
                    metadata={"task_id": str(task.id)},
                    created_at=now,
                )
            )
        return task

    async def record_email_sent(self, renewal_id: UUID, subject: str) -> Renewal:
        now = self._clock()
        renewal = await self.stores.renewals.record_email_sent(renewal_id, now)
        await self.stores.activities.append(
            Activity(
                client_id=renewal.client_id,
                renewal_id=renewal.id,
                type=ActivityType.EMAIL_SENT,
                title="Email Sent",
                description=f"Sent email: {subject}",
                metadata={"subject": subject},
                created_at=now,
            )
        )
        return renewal

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def create_template(self, request: NewTemplateRequest) -> TaskTemplate:
        template = TaskTemplate(**request.model_dump(), is_active=True)
        return await self.stores.templates.create(template)

    async def seed_default_templates(self) -> int:
        """Copy the default checklist into an empty template store."""
        if await self.stores.templates.count() > 0:
            logger.info("Template store already populated; skipping seed")
            return 0
        for template in self._default_templates:
            await self.stores.templates.create(template.model_copy())
        logger.info("Seeded %d default task templates", len(self._default_templates))
        return len(self._default_templates)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _renewal(self, renewal_id: UUID) -> Renewal:
        renewal = await self.stores.renewals.find_by_id(renewal_id)
        if renewal is None:
            raise RecordNotFound("Renewal", renewal_id)
        return renewal

    async def _renewal_with_policy(self, renewal_id: UUID) -> tuple[Renewal, Policy]:
        renewal = await self._renewal(renewal_id)
        policy: Optional[Policy] = await self.stores.policies.find_by_id(renewal.policy_id)
        if policy is None:
            raise RecordNotFound("Policy", renewal.policy_id)
        return renewal, policy
