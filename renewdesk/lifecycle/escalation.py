"""Escalation detector — renewals that need a broker's attention now.

A renewal qualifies when it is pending or in progress, due within the
escalation window (30 days by default), and either

  (a) no quotes have been received, or
  (b) it is high risk and nobody has touched it for the stale window
      (7 days by default).

When both apply the entry reports (a).  Read-only: nothing is written.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from pydantic import BaseModel

from renewdesk.config import settings
from renewdesk.models import (
    PolicyType,
    Renewal,
    RiskLevel,
    days_until,
    utc_now,
)
from renewdesk.stores.base import Stores

logger = logging.getLogger("renewdesk.lifecycle.escalation")

REASON_NO_QUOTES = "No quotes received"
REASON_STALE_HIGH_RISK = "High risk with no recent activity"


class EscalationEntry(BaseModel):
    renewal_id: UUID
    client_name: str
    policy_type: Optional[PolicyType]
    days_until_due: int
    risk_score: RiskLevel
    reason: str
    overdue_tasks: int


def is_high_risk(level: RiskLevel) -> bool:
    if level is RiskLevel.HIGH:
        return True
    if level is RiskLevel.MEDIUM or level is RiskLevel.LOW:
        return False
    raise ValueError(f"Unhandled risk level: {level!r}")


def escalation_reason(renewal: Renewal, stale_before: datetime) -> Optional[str]:
    """Return why *renewal* needs attention, or ``None`` if it does not.

    Window and status filtering are the caller's job; this only applies the
    quote / staleness rules.  A renewal never touched counts as last touched
    when it was created.
    """
    if renewal.quotes_received == 0:
        return REASON_NO_QUOTES
    last_touched = renewal.last_touched_at or renewal.created_at
    if is_high_risk(renewal.risk_score) and last_touched < stale_before:
        return REASON_STALE_HIGH_RISK
    return None


class EscalationDetector:
    def __init__(
        self,
        stores: Stores,
        clock: Callable[[], datetime] = utc_now,
        window_days: int | None = None,
        stale_days: int | None = None,
    ) -> None:
        self._stores = stores
        self._clock = clock
        self._window_days = (
            settings.escalation_window_days if window_days is None else window_days
        )
        self._stale_days = settings.stale_touch_days if stale_days is None else stale_days

    async def list_escalations(self) -> list[EscalationEntry]:
        now = self._clock()
        due_by = now + timedelta(days=self._window_days)
        stale_before = now - timedelta(days=self._stale_days)

        candidates = await self._stores.renewals.find_open_due_before(due_by)
        entries: list[EscalationEntry] = []

        for renewal in candidates:
            reason = escalation_reason(renewal, stale_before)
            if reason is None:
                continue

            client = await self._stores.clients.find_by_id(renewal.client_id)
            policy = await self._stores.policies.find_by_id(renewal.policy_id)
            overdue = await self._stores.tasks.find_overdue(renewal.id)

            entries.append(
                EscalationEntry(
                    renewal_id=renewal.id,
                    client_name=client.display_name if client else "Unknown client",
                    policy_type=policy.type if policy else None,
                    days_until_due=days_until(renewal.due_date, now),
                    risk_score=renewal.risk_score,
                    reason=reason,
                    overdue_tasks=len(overdue),
                )
            )

        logger.info(
            "Escalation check: %d of %d open renewals due within %d days need attention",
            len(entries),
            len(candidates),
            self._window_days,
        )
        return entries
