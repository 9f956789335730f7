"""
Tests for the renewal opener and the expiring-policy scanner.
"""
from datetime import timedelta

import pytest

from renewdesk.engine import RenewalEngine
from renewdesk.errors import StoreUnavailable
from renewdesk.models import (
    ActivityType,
    PolicyStatus,
    PolicyType,
    RenewalStatus,
    RiskLevel,
    TaskStatus,
    TaskTemplate,
)
from renewdesk.stores.memory import (
    MemoryPolicyStore,
    MemoryRenewalStore,
    MemoryTaskStore,
    MemoryTaskTemplateStore,
)

from tests.conftest import NOW, make_policy, make_renewal


def build_engine(stores, clock):
    return RenewalEngine(stores, clock=clock, store_max_retries=2, store_retry_wait_seconds=0)


# =============================================================================
# Renewal Opener
# =============================================================================

class TestRenewalOpener:
    async def test_opens_scored_renewal_with_default_tasks(self, engine, state, client):
        policy = state.add_policy(
            make_policy(
                client,
                policy_type=PolicyType.CYBER_LIABILITY,
                premium="120000",
                days_out=10,
                carrier="Beazley",
            )
        )

        outcome = await engine.opener.open(policy, NOW)

        assert outcome.created is True
        assert outcome.tasks_created == 13
        renewal = outcome.renewal
        assert renewal.status == RenewalStatus.PENDING
        assert renewal.due_date == policy.expiration_date
        assert renewal.risk_score == RiskLevel.HIGH
        assert renewal.insights == [
            "Policy expires in 10 days",
            "Current premium: $120,000.00",
            "Coverage with Beazley",
        ]
        assert len(state.tasks) == 13
        assert all(t.renewal_id == renewal.id for t in state.tasks.values())

    async def test_logs_renewal_created_activity(self, engine, state, client):
        policy = state.add_policy(make_policy(client))

        outcome = await engine.opener.open(policy, NOW)

        (activity,) = state.activities
        assert activity.type == ActivityType.RENEWAL_CREATED
        assert activity.renewal_id == outcome.renewal.id
        assert activity.client_id == client.id
        assert activity.metadata["policy_number"] == "POL-001"

    async def test_partial_day_rounds_up(self, engine, state, client):
        policy = state.add_policy(make_policy(client, days_out=9.5))

        outcome = await engine.opener.open(policy, NOW)

        assert outcome.renewal.insights[0] == "Policy expires in 10 days"

    @pytest.mark.parametrize(
        "status", [RenewalStatus.PENDING, RenewalStatus.IN_PROGRESS, RenewalStatus.QUOTED]
    )
    async def test_skips_when_open_renewal_exists(self, engine, state, client, status):
        policy = state.add_policy(make_policy(client))
        existing = make_renewal(policy, status=status)
        state.renewals[existing.id] = existing

        outcome = await engine.opener.open(policy, NOW)

        assert outcome.created is False
        assert list(state.renewals) == [existing.id]
        assert state.tasks == {}

    @pytest.mark.parametrize(
        "status", [RenewalStatus.BOUND, RenewalStatus.LOST, RenewalStatus.CANCELLED]
    )
    async def test_closed_renewal_does_not_block(self, engine, state, client, status):
        policy = state.add_policy(make_policy(client))
        closed = make_renewal(policy, status=status)
        state.renewals[closed.id] = closed

        outcome = await engine.opener.open(policy, NOW)

        assert outcome.created is True
        assert len(state.renewals) == 2

    async def test_lost_race_counts_as_skip(self, stores, state, clock, client):
        class StaleCheckRenewalStore(MemoryRenewalStore):
            async def has_blocking_renewal(self, policy_id):
                return False

        stores.renewals = StaleCheckRenewalStore(state)
        engine = build_engine(stores, clock)
        policy = state.add_policy(make_policy(client))
        existing = make_renewal(policy)
        state.renewals[existing.id] = existing

        outcome = await engine.opener.open(policy, NOW)

        assert outcome.created is False
        assert len(state.renewals) == 1


# =============================================================================
# Expiring-Policy Scanner
# =============================================================================

class TestExpiringPolicyScanner:
    async def test_creates_for_policies_in_window_only(self, engine, state, client):
        state.add_policy(make_policy(client, "POL-001", days_out=30))
        state.add_policy(make_policy(client, "POL-002", days_out=89))
        state.add_policy(make_policy(client, "POL-003", days_out=120))
        state.add_policy(make_policy(client, "POL-004", days_out=30, status=PolicyStatus.CANCELLED))

        result = await engine.run_expiring_policy_scan(90)

        assert result.created == 2
        assert result.skipped == 0
        assert result.errors == []
        opened = {r.policy_id for r in state.renewals.values()}
        numbers = {state.policies[pid].policy_number for pid in opened}
        assert numbers == {"POL-001", "POL-002"}

    async def test_rescan_opens_nothing_new(self, engine, state, client):
        state.add_policy(make_policy(client, days_out=30))

        first = await engine.run_expiring_policy_scan(90)
        second = await engine.run_expiring_policy_scan(90)

        assert first.created == 1
        assert second.created == 0
        assert len(state.renewals) == 1

    async def test_already_expired_policy_is_included(self, engine, state, client):
        state.add_policy(make_policy(client, days_out=-3))

        result = await engine.run_expiring_policy_scan(90)

        assert result.created == 1
        (renewal,) = state.renewals.values()
        assert renewal.risk_score == RiskLevel.MEDIUM

    async def test_per_policy_failure_is_isolated(self, stores, state, clock, client):
        class FlakyTemplateStore(MemoryTaskTemplateStore):
            async def find_active(self, policy_type):
                if policy_type == PolicyType.CYBER_LIABILITY:
                    raise RuntimeError("template lookup failed")
                return await super().find_active(policy_type)

        stores.templates = FlakyTemplateStore(state)
        engine = build_engine(stores, clock)
        state.add_policy(make_policy(client, "POL-001", days_out=20))
        state.add_policy(
            make_policy(client, "POL-002", policy_type=PolicyType.CYBER_LIABILITY, days_out=25)
        )
        state.add_policy(make_policy(client, "POL-003", days_out=40))

        result = await engine.run_expiring_policy_scan(90)

        assert result.created == 2
        assert result.errors == ["Policy POL-002: template lookup failed"]

    async def test_candidate_query_failure_aborts_scan(self, stores, state, clock, client):
        class BrokenPolicyStore(MemoryPolicyStore):
            async def find_expiring_active(self, window_end):
                raise RuntimeError("relation does not exist")

        stores.policies = BrokenPolicyStore(state)
        engine = build_engine(stores, clock)
        state.add_policy(make_policy(client, days_out=20))

        result = await engine.run_expiring_policy_scan(90)

        assert result.created == 0
        assert result.skipped == 0
        assert result.errors == ["Job error: relation does not exist"]

    async def test_unavailable_store_is_retried(self, stores, state, clock, client):
        class OnceUnavailablePolicyStore(MemoryPolicyStore):
            calls = 0

            async def find_expiring_active(self, window_end):
                type(self).calls += 1
                if type(self).calls == 1:
                    raise StoreUnavailable("connection refused")
                return await super().find_expiring_active(window_end)

        stores.policies = OnceUnavailablePolicyStore(state)
        engine = build_engine(stores, clock)
        state.add_policy(make_policy(client, days_out=20))

        result = await engine.run_expiring_policy_scan(90)

        assert OnceUnavailablePolicyStore.calls == 2
        assert result.created == 1
        assert result.errors == []

    async def test_retries_exhausted_reports_job_error(self, stores, state, clock, client):
        class DownPolicyStore(MemoryPolicyStore):
            async def find_expiring_active(self, window_end):
                raise StoreUnavailable("connection refused")

        stores.policies = DownPolicyStore(state)
        engine = build_engine(stores, clock)

        result = await engine.run_expiring_policy_scan(90)

        assert result.errors == ["Job error: connection refused"]

    async def test_zero_retries_tries_once(self, stores, state, clock, client):
        class CountingDownPolicyStore(MemoryPolicyStore):
            calls = 0

            async def find_expiring_active(self, window_end):
                type(self).calls += 1
                raise StoreUnavailable("connection refused")

        stores.policies = CountingDownPolicyStore(state)
        engine = RenewalEngine(
            stores, clock=clock, store_max_retries=0, store_retry_wait_seconds=0
        )

        result = await engine.run_expiring_policy_scan(90)

        assert CountingDownPolicyStore.calls == 1
        assert result.errors == ["Job error: connection refused"]

    async def test_custom_templates_used_for_new_renewals(self, engine, state, client):
        await engine.stores.templates.create(TaskTemplate(name="Only step", days_before_due=15))
        policy = state.add_policy(make_policy(client, days_out=60))

        await engine.run_expiring_policy_scan(90)

        (task,) = state.tasks.values()
        assert task.name == "Only step"
        assert task.due_date == policy.expiration_date - timedelta(days=15)
        assert task.status == TaskStatus.PENDING


# =============================================================================
# Combined job
# =============================================================================

class TestRenewalJob:
    async def test_scan_then_sweep(self, engine, state, client, clock):
        state.add_policy(make_policy(client, days_out=60))

        result = await engine.run_renewal_job(90)

        # 60 days out: the 90/85/80/75/70 day steps are already past due
        assert result.renewals_created == 1
        assert result.tasks_marked_overdue == 5
        assert result.errors == []
        overdue = [t for t in state.tasks.values() if t.status == TaskStatus.OVERDUE]
        assert len(overdue) == 5

    async def test_sweep_failure_is_reported(self, stores, state, clock, client):
        class BrokenTaskStore(MemoryTaskStore):
            async def mark_overdue(self, before):
                raise RuntimeError("deadlock detected")

        stores.tasks = BrokenTaskStore(state)
        engine = build_engine(stores, clock)
        state.add_policy(make_policy(client, days_out=60))

        result = await engine.run_renewal_job(90)

        assert result.renewals_created == 1
        assert result.tasks_marked_overdue == 0
        assert result.errors == ["Sweep error: deadlock detected"]
