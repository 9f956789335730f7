"""Renewal opener — turns one expiring policy into a scored renewal with its
workflow checklist.

Steps for a single policy:

  1. Skip if the policy already has a pending / in-progress / quoted renewal.
  2. Compute whole days until expiry (rounded up).
  3. Score risk.
  4. Create the renewal (create-if-absent in the store; losing a race to a
     concurrent scan is reported as a skip, not an error).
  5. Resolve templates and create one task per template.
  6. Log a ``renewal_created`` activity.

Errors from steps 2–6 propagate to the caller; the scanner isolates them per
policy.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from renewdesk.errors import OpenRenewalExists
from renewdesk.lifecycle.resolver import TaskTemplateResolver, instantiate_tasks
from renewdesk.lifecycle.risk import RiskThresholds, score_risk
from renewdesk.models import (
    Activity,
    ActivityType,
    Policy,
    Renewal,
    RenewalStatus,
    days_until,
)
from renewdesk.stores.base import Stores

logger = logging.getLogger("renewdesk.lifecycle.opener")


class OpenOutcome(BaseModel):
    """Result of :meth:`RenewalOpener.open` for one policy."""

    created: bool
    renewal: Optional[Renewal] = None
    tasks_created: int = 0


class RenewalOpener:
    def __init__(
        self,
        stores: Stores,
        resolver: TaskTemplateResolver,
        thresholds: RiskThresholds | None = None,
    ) -> None:
        self._stores = stores
        self._resolver = resolver
        self._thresholds = thresholds or RiskThresholds()

    async def open(self, policy: Policy, now: datetime) -> OpenOutcome:
        """Open a renewal for *policy* unless one is already open."""
        if await self._stores.renewals.has_blocking_renewal(policy.id):
            logger.debug("Policy %s already has an open renewal", policy.policy_number)
            return OpenOutcome(created=False)

        days = days_until(policy.expiration_date, now)
        assessment = score_risk(policy.type, policy.premium, days, self._thresholds)

        renewal = Renewal(
            policy_id=policy.id,
            client_id=policy.client_id,
            due_date=policy.expiration_date,
            status=RenewalStatus.PENDING,
            risk_score=assessment.level,
            risk_factors=assessment.factors,
            insights=[
                f"Policy expires in {days} days",
                f"Current premium: ${policy.premium:,.2f}",
                f"Coverage with {policy.carrier}",
            ],
            created_at=now,
        )
        try:
            renewal = await self._stores.renewals.create(renewal)
        except OpenRenewalExists:
            logger.info(
                "Policy %s gained an open renewal concurrently; skipping",
                policy.policy_number,
            )
            return OpenOutcome(created=False)

        templates = await self._resolver.resolve(policy.type)
        tasks = instantiate_tasks(renewal.id, renewal.due_date, templates)
        await self._stores.tasks.create_many(tasks)
        logger.info("Created %d tasks for renewal %s", len(tasks), renewal.id)

        await self._stores.activities.append(
            Activity(
                client_id=policy.client_id,
                renewal_id=renewal.id,
                type=ActivityType.RENEWAL_CREATED,
                title="Renewal Created",
                description=(
                    f"Auto-created renewal for {policy.type.value} policy "
                    f"expiring {policy.expiration_date:%Y-%m-%d}"
                ),
                metadata={
                    "policy_number": policy.policy_number,
                    "risk_score": assessment.level.value,
                    "risk_points": assessment.points,
                },
                created_at=now,
            )
        )
        return OpenOutcome(created=True, renewal=renewal, tasks_created=len(tasks))
