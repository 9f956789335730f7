"""Expiring-policy scanner — the batch driver that opens renewals.

Finds active policies expiring inside the lookahead window that have no open
renewal, then hands each one to :class:`RenewalOpener`.  A failure on one
policy is recorded against its policy number and the loop moves on; only a
failure of the candidate query itself aborts the scan.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from renewdesk.config import settings
from renewdesk.errors import StoreUnavailable
from renewdesk.lifecycle.opener import RenewalOpener
from renewdesk.models import Policy, utc_now
from renewdesk.stores.base import PolicyStore

logger = logging.getLogger("renewdesk.lifecycle.scanner")


class ScanResult(BaseModel):
    """Aggregate outcome of one scan.

    Attributes:
        created: Renewals opened.
        skipped: Candidates that already had an open renewal.
        errors: ``"Policy <number>: <message>"`` per failed candidate, or a
            single ``"Job error: <message>"`` when the query step failed.
    """

    created: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class ExpiringPolicyScanner:
    def __init__(
        self,
        policies: PolicyStore,
        opener: RenewalOpener,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int | None = None,
        retry_wait_seconds: float | None = None,
    ) -> None:
        self._policies = policies
        self._opener = opener
        self._clock = clock
        self._max_retries = (
            settings.store_max_retries if max_retries is None else max_retries
        )
        self._retry_wait = (
            settings.store_retry_wait_seconds
            if retry_wait_seconds is None
            else retry_wait_seconds
        )

    async def run(self, lookahead_days: int | None = None) -> ScanResult:
        """Open renewals for every policy expiring within *lookahead_days*."""
        days = settings.scan_lookahead_days if lookahead_days is None else lookahead_days
        result = ScanResult()
        now = self._clock()
        window_end = now + timedelta(days=days)

        try:
            candidates = await self._find_candidates(window_end)
        except Exception as exc:
            result.errors.append(f"Job error: {exc}")
            logger.exception("Renewal scan aborted: candidate query failed")
            return result

        logger.info("Found %d policies needing renewals (window=%d days)", len(candidates), days)

        for policy in candidates:
            try:
                outcome = await self._opener.open(policy, now)
            except Exception as exc:
                msg = f"Policy {policy.policy_number}: {exc}"
                logger.error("Error creating renewal for %s: %s", policy.policy_number, exc)
                result.errors.append(msg)
                continue

            if outcome.created:
                result.created += 1
                logger.info("Created renewal for policy %s", policy.policy_number)
            else:
                result.skipped += 1

        logger.info(
            "Renewal scan complete: created=%d skipped=%d errors=%d",
            result.created,
            result.skipped,
            len(result.errors),
        )
        return result

    async def _find_candidates(self, window_end: datetime) -> list[Policy]:
        """Run the candidate query, retrying while the store is unreachable."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(StoreUnavailable),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_wait, max=30),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying candidate query (attempt %d)",
                        attempt.retry_state.attempt_number,
                    )
                return await self._policies.find_expiring_active(window_end)
        return []
