"""
Tests for the record-level engine operations: renewal status, quotes,
tasks, templates, and email tracking.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from renewdesk.errors import InvalidRequest, OpenRenewalExists, RecordNotFound
from renewdesk.models import (
    ActivityType,
    PolicyType,
    QuoteStatus,
    RenewalStatus,
    RiskLevel,
    TaskCategory,
    TaskPriority,
    TaskStatus,
)
from renewdesk.schemas import NewQuoteRequest, NewTaskRequest, NewTemplateRequest

from tests.conftest import NOW, make_policy, make_quote, make_renewal, make_task


@pytest.fixture
def policy(state, client):
    return state.add_policy(make_policy(client, premium="100000"))


@pytest.fixture
def renewal(state, policy):
    renewal = make_renewal(policy)
    state.renewals[renewal.id] = renewal
    return renewal


def quote_request(renewal, premium, carrier="Chubb"):
    return NewQuoteRequest(
        renewal_id=renewal.id,
        carrier=carrier,
        premium=Decimal(premium),
        coverage_limit=Decimal("1000000"),
    )


# =============================================================================
# Renewal status
# =============================================================================

class TestUpdateRenewalStatus:
    async def test_binding_completes_and_logs(self, engine, state, renewal, clock):
        clock.advance(hours=2)

        updated = await engine.update_renewal_status(renewal.id, RenewalStatus.BOUND)

        assert updated.status == RenewalStatus.BOUND
        assert updated.completed_at == NOW + timedelta(hours=2)
        assert state.renewals[renewal.id].last_touched_at == NOW + timedelta(hours=2)
        (activity,) = state.activities
        assert activity.type == ActivityType.STATUS_CHANGED
        assert activity.metadata == {"from": "pending", "to": "bound"}

    async def test_risk_override_only_touches(self, engine, state, renewal):
        updated = await engine.update_renewal_status(renewal.id, risk_score=RiskLevel.HIGH)

        assert updated.status == RenewalStatus.PENDING
        assert updated.risk_score == RiskLevel.HIGH
        assert updated.completed_at is None
        assert updated.last_touched_at == NOW
        assert state.activities == []

    async def test_closing_unblocks_next_scan(self, engine, renewal):
        assert (await engine.run_expiring_policy_scan(90)).created == 0

        await engine.update_renewal_status(renewal.id, RenewalStatus.LOST)
        result = await engine.run_expiring_policy_scan(90)

        assert (result.created, result.errors) == (1, [])

    async def test_reopening_beside_open_renewal(self, engine, state, policy, renewal):
        closed = make_renewal(policy, status=RenewalStatus.CANCELLED)
        state.renewals[closed.id] = closed

        with pytest.raises(OpenRenewalExists):
            await engine.update_renewal_status(closed.id, RenewalStatus.PENDING)
        assert state.renewals[closed.id].status == RenewalStatus.CANCELLED

    async def test_requires_a_change(self, engine, renewal):
        with pytest.raises(InvalidRequest):
            await engine.update_renewal_status(renewal.id)

    async def test_unknown_renewal(self, engine):
        with pytest.raises(RecordNotFound):
            await engine.update_renewal_status(uuid4(), RenewalStatus.BOUND)


# =============================================================================
# Quotes
# =============================================================================

class TestRecordQuote:
    async def test_records_and_updates_renewal(self, engine, state, renewal):
        recorded = await engine.record_quote(quote_request(renewal, "90000"))

        assert recorded.quote.price_change == pytest.approx(-10.0)
        assert recorded.quote.status == QuoteStatus.RECEIVED
        assert recorded.comparison.total_quotes == 1
        stored = state.renewals[renewal.id]
        assert stored.quotes_received == 1
        assert stored.status == RenewalStatus.QUOTED
        assert stored.last_touched_at == NOW
        (activity,) = state.activities
        assert activity.type == ActivityType.QUOTE_RECEIVED

    async def test_concurrent_quotes_all_counted(self, engine, state, renewal):
        requests = [quote_request(renewal, str(90000 + i), f"Carrier {i}") for i in range(5)]

        await asyncio.gather(*(engine.record_quote(r) for r in requests))

        assert state.renewals[renewal.id].quotes_received == 5
        assert len(state.quotes) == 5

    async def test_bound_renewal_keeps_status(self, engine, state, renewal):
        state.renewals[renewal.id].status = RenewalStatus.BOUND

        await engine.record_quote(quote_request(renewal, "90000"))

        assert state.renewals[renewal.id].status == RenewalStatus.BOUND
        assert state.renewals[renewal.id].quotes_received == 1

    async def test_unknown_renewal(self, engine):
        request = NewQuoteRequest(
            renewal_id=uuid4(),
            carrier="Chubb",
            premium=Decimal("1000"),
            coverage_limit=Decimal("1000000"),
        )

        with pytest.raises(RecordNotFound):
            await engine.record_quote(request)

    @pytest.mark.parametrize(
        "overrides",
        [{"carrier": ""}, {"premium": Decimal("0")}, {"coverage_limit": Decimal("-1")}],
    )
    def test_request_validation(self, overrides):
        fields = {
            "renewal_id": uuid4(),
            "carrier": "Chubb",
            "premium": Decimal("1000"),
            "coverage_limit": Decimal("1000000"),
        }
        fields.update(overrides)

        with pytest.raises(ValidationError):
            NewQuoteRequest(**fields)


class TestSelectQuote:
    async def test_selecting_clears_siblings(self, engine, state, renewal):
        ids = []
        for i, premium in enumerate(["90000", "95000", "100000"]):
            recorded = await engine.record_quote(quote_request(renewal, premium, f"Carrier {i}"))
            ids.append(recorded.quote.id)
        await engine.select_quote(ids[0])

        selected = await engine.select_quote(ids[1])

        assert selected.id == ids[1]
        flags = {qid: state.quotes[qid].is_selected for qid in ids}
        assert flags == {ids[0]: False, ids[1]: True, ids[2]: False}
        assert state.quotes[ids[1]].status == QuoteStatus.SELECTED
        assert state.quotes[ids[0]].status == QuoteStatus.RECEIVED

        comparison = await engine.compare_quotes(renewal.id)
        assert comparison.selected_quote_id == ids[1]
        assert comparison.best_value_id == ids[0]

    async def test_logs_selection(self, engine, state, renewal):
        recorded = await engine.record_quote(quote_request(renewal, "95000"))

        await engine.select_quote(recorded.quote.id)

        assert state.activities[-1].type == ActivityType.QUOTE_SELECTED
        assert state.renewals[renewal.id].status == RenewalStatus.QUOTED

    async def test_unknown_quote(self, engine):
        with pytest.raises(RecordNotFound):
            await engine.select_quote(uuid4())


class TestDeleteQuote:
    async def test_decrements_count(self, engine, state, renewal):
        recorded = await engine.record_quote(quote_request(renewal, "95000"))

        await engine.delete_quote(recorded.quote.id)

        assert recorded.quote.id not in state.quotes
        assert state.renewals[renewal.id].quotes_received == 0

    async def test_count_never_negative(self, engine, state, renewal):
        quote = make_quote(renewal, "95000")
        state.quotes[quote.id] = quote

        await engine.delete_quote(quote.id)

        assert state.renewals[renewal.id].quotes_received == 0


class TestCompareQuotes:
    async def test_compare_renewal_quotes_in_arrival_order(self, engine, state, renewal):
        late = make_quote(renewal, "90000", "Late", received_minutes=10)
        early = make_quote(renewal, "90000", "Early", received_minutes=1)
        state.quotes[late.id] = late
        state.quotes[early.id] = early

        comparison = await engine.compare_quotes(renewal.id)

        assert [q.quote.carrier for q in comparison.quotes] == ["Early", "Late"]
        assert comparison.best_value_id == early.id
        assert comparison.expiring_premium == Decimal("100000")

    async def test_missing_renewal(self, engine):
        with pytest.raises(RecordNotFound):
            await engine.compare_quotes(uuid4())

    async def test_quote_set_needs_two_ids(self, engine, state, renewal):
        quote = make_quote(renewal, "90000")
        state.quotes[quote.id] = quote

        with pytest.raises(InvalidRequest):
            await engine.compare_quote_set([quote.id])
        with pytest.raises(InvalidRequest):
            await engine.compare_quote_set([quote.id, quote.id])

    async def test_quote_set_must_share_renewal(self, engine, state, client, renewal):
        other_policy = state.add_policy(make_policy(client, "POL-002"))
        other = make_renewal(other_policy)
        state.renewals[other.id] = other
        a = make_quote(renewal, "90000")
        b = make_quote(other, "80000")
        state.quotes[a.id] = a
        state.quotes[b.id] = b

        with pytest.raises(InvalidRequest):
            await engine.compare_quote_set([a.id, b.id])

    async def test_quote_set_side_by_side(self, engine, state, renewal):
        quotes = [
            make_quote(renewal, premium, received_minutes=i)
            for i, premium in enumerate(["99000", "97000", "120000"])
        ]
        for q in quotes:
            state.quotes[q.id] = q

        comparison = await engine.compare_quote_set([quotes[0].id, quotes[1].id])

        assert comparison.total_quotes == 2
        assert comparison.best_value_id == quotes[1].id


# =============================================================================
# Tasks
# =============================================================================

class TestTasks:
    async def test_add_task_appends_after_max_order(self, engine, state, renewal):
        await engine.stores.tasks.create_many(
            [make_task(renewal, "A", order=3), make_task(renewal, "B", order=7)]
        )

        task = await engine.add_task(
            NewTaskRequest(renewal_id=renewal.id, name="Call underwriter", due_date=NOW)
        )

        assert task.order == 8
        assert task.priority == TaskPriority.MEDIUM
        assert task.category == TaskCategory.OTHER
        assert task.status == TaskStatus.PENDING

    async def test_first_manual_task_gets_order_one(self, engine, renewal):
        task = await engine.add_task(
            NewTaskRequest(renewal_id=renewal.id, name="Kickoff", due_date=NOW)
        )

        assert task.order == 1

    def test_task_name_required(self):
        with pytest.raises(ValidationError):
            NewTaskRequest(renewal_id=uuid4(), name="", due_date=NOW)

    async def test_completing_task(self, engine, state, renewal, clock):
        task = make_task(renewal)
        await engine.stores.tasks.create_many([task])
        clock.advance(hours=3)

        updated = await engine.update_task_status(task.id, TaskStatus.COMPLETED)

        assert updated.completed_at == NOW + timedelta(hours=3)
        assert state.tasks[task.id].status == TaskStatus.COMPLETED
        assert state.renewals[renewal.id].last_touched_at == NOW + timedelta(hours=3)
        assert state.activities[-1].type == ActivityType.TASK_COMPLETED

    async def test_non_completion_touches_without_activity(self, engine, state, renewal):
        task = make_task(renewal)
        await engine.stores.tasks.create_many([task])

        await engine.update_task_status(task.id, TaskStatus.IN_PROGRESS)

        assert state.tasks[task.id].completed_at is None
        assert state.renewals[renewal.id].last_touched_at == NOW
        assert state.activities == []

    async def test_progress(self, engine, renewal):
        await engine.stores.tasks.create_many(
            [
                make_task(renewal, "A", status=TaskStatus.COMPLETED),
                make_task(renewal, "B", status=TaskStatus.COMPLETED),
                make_task(renewal, "C", status=TaskStatus.OVERDUE),
                make_task(renewal, "D", status=TaskStatus.IN_PROGRESS),
                make_task(renewal, "E", status=TaskStatus.PENDING),
                make_task(renewal, "F", status=TaskStatus.PENDING),
            ]
        )

        progress = await engine.task_progress(renewal.id)

        assert progress.total == 6
        assert progress.completed == 2
        assert progress.overdue == 1
        assert progress.in_progress == 1
        assert progress.pending == 2
        assert progress.percent_complete == 33

    async def test_progress_with_no_tasks(self, engine, renewal):
        progress = await engine.task_progress(renewal.id)

        assert progress.total == 0
        assert progress.percent_complete == 0


# =============================================================================
# Templates
# =============================================================================

class TestTemplates:
    async def test_seed_only_when_empty(self, engine):
        assert await engine.seed_default_templates() == 13
        assert await engine.seed_default_templates() == 0
        assert await engine.stores.templates.count() == 13

    async def test_create_template_scopes_resolution(self, engine):
        created = await engine.create_template(
            NewTemplateRequest(
                name="Cyber questionnaire",
                days_before_due=60,
                policy_type=PolicyType.CYBER_LIABILITY,
            )
        )

        assert created.id is not None
        cyber = await engine.resolver.resolve(PolicyType.CYBER_LIABILITY)
        auto = await engine.resolver.resolve(PolicyType.COMMERCIAL_AUTO)
        assert [t.name for t in cyber] == ["Cyber questionnaire"]
        assert len(auto) == 13

    @pytest.mark.parametrize("overrides", [{"name": ""}, {"days_before_due": -1}])
    def test_template_validation(self, overrides):
        fields = {"name": "Step", "days_before_due": 10}
        fields.update(overrides)

        with pytest.raises(ValidationError):
            NewTemplateRequest(**fields)


# =============================================================================
# Email tracking
# =============================================================================

class TestEmailTracking:
    async def test_records_email(self, engine, state, renewal):
        updated = await engine.record_email_sent(renewal.id, "Renewal kickoff")

        assert updated.emails_sent == 1
        assert state.renewals[renewal.id].emails_sent == 1
        assert state.renewals[renewal.id].last_touched_at == NOW
        (activity,) = state.activities
        assert activity.type == ActivityType.EMAIL_SENT
        assert activity.metadata == {"subject": "Renewal kickoff"}
