"""RenewDesk Celery tasks — periodic background jobs for the renewal lifecycle.

Each task builds a :class:`~renewdesk.engine.RenewalEngine` over the SQL
stores and drives it through the shared ``_run_async`` helper.  Tasks are
registered with the Celery app defined in :mod:`renewdesk.celery_app` and
scheduled via the beat configuration in the same module.

Task inventory:
    1. run_renewal_scan    — open renewals for expiring policies, then sweep
    2. sweep_overdue_tasks — move past-due open tasks to overdue
    3. escalation_digest   — log every renewal that needs attention
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, TypeVar

from celery import Task

from renewdesk.celery_app import app
from renewdesk.config import settings
from renewdesk.db import dispose_engine
from renewdesk.engine import RenewalEngine
from renewdesk.stores.sql import sql_stores

logger = logging.getLogger("renewdesk.tasks")

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Execute an async coroutine from a synchronous Celery task.

    Each call gets a fresh event loop, so the pooled engine is disposed before
    the loop closes; its connections cannot be reused across loops.
    """

    async def _wrapped() -> T:
        try:
            return await coro
        finally:
            await dispose_engine()

    return asyncio.run(_wrapped())


def _build_engine() -> RenewalEngine:
    return RenewalEngine(
        sql_stores(),
        escalation_window_days=settings.escalation_window_days,
        stale_touch_days=settings.stale_touch_days,
        store_max_retries=settings.store_max_retries,
        store_retry_wait_seconds=settings.store_retry_wait_seconds,
    )


# ---------------------------------------------------------------------------
# Task 1: run_renewal_scan
# ---------------------------------------------------------------------------


@app.task(
    name="renewdesk.tasks.run_renewal_scan",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
    queue="renewals",
)
def run_renewal_scan(self: Task, lookahead_days: int | None = None) -> dict:
    """Open renewals for policies expiring within the lookahead window.

    Runs the expiring-policy scan followed by the overdue sweep.  Per-policy
    failures are reported in ``errors`` and never fail the task.

    Returns:
        Dict with ``renewals_created``, ``renewals_skipped``,
        ``tasks_marked_overdue``, and ``errors`` keys.
    """
    logger.info("Task: run_renewal_scan started")
    result = _run_async(_build_engine().run_renewal_job(lookahead_days))
    summary = result.model_dump()
    logger.info(
        "run_renewal_scan complete: created=%d skipped=%d overdue=%d errors=%d",
        result.renewals_created,
        result.renewals_skipped,
        result.tasks_marked_overdue,
        len(result.errors),
    )
    return summary


# ---------------------------------------------------------------------------
# Task 2: sweep_overdue_tasks
# ---------------------------------------------------------------------------


@app.task(
    name="renewdesk.tasks.sweep_overdue_tasks",
    bind=True,
    max_retries=3,
    default_retry_delay=120,
    queue="renewals",
)
def sweep_overdue_tasks(self: Task) -> dict:
    """Move every pending / in-progress task past its due date to overdue."""
    logger.info("Task: sweep_overdue_tasks started")
    summary: dict = {"tasks_marked_overdue": 0, "errors": []}
    try:
        summary["tasks_marked_overdue"] = _run_async(_build_engine().sweep_overdue_tasks())
    except Exception as exc:
        msg = f"Sweep error: {exc}"
        logger.error(msg)
        summary["errors"].append(msg)
    return summary


# ---------------------------------------------------------------------------
# Task 3: escalation_digest
# ---------------------------------------------------------------------------


@app.task(
    name="renewdesk.tasks.escalation_digest",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    queue="default",
)
def escalation_digest(self: Task) -> dict:
    """Log each renewal that needs attention and return them for the result backend.

    Returns:
        Dict with ``count``, ``escalations`` (JSON-safe entries), and
        ``errors`` keys.
    """
    logger.info("Task: escalation_digest started")
    try:
        entries = _run_async(_build_engine().list_escalations())
    except Exception as exc:
        msg = f"Escalation check error: {exc}"
        logger.error(msg)
        return {"count": 0, "escalations": [], "errors": [msg]}

    for entry in entries:
        logger.warning(
            "Escalation: renewal=%s client=%s due_in=%dd risk=%s reason=%s overdue_tasks=%d",
            entry.renewal_id,
            entry.client_name,
            entry.days_until_due,
            entry.risk_score.value,
            entry.reason,
            entry.overdue_tasks,
        )
    return {
        "count": len(entries),
        "escalations": [e.model_dump(mode="json") for e in entries],
        "errors": [],
    }
