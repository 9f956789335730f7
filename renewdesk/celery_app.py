"""RenewDesk Celery application — task broker, beat scheduler, and configuration.

Initialises the Celery app with Redis as both broker and result backend,
registers the periodic beat schedule for the renewal jobs, and exposes the app
instance for use by workers (``celery -A renewdesk.celery_app worker``).

Beat schedule overview:
    - run_renewal_scan    : 01:00 UTC daily
    - sweep_overdue_tasks : every hour
    - escalation_digest   : 07:00 UTC daily
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.schedules import crontab

from renewdesk.config import settings

logger = logging.getLogger("renewdesk.celery")

# ---------------------------------------------------------------------------
# App initialisation
# ---------------------------------------------------------------------------

app = Celery(
    "renewdesk",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["renewdesk.tasks"],
)

# Task results are plain summary dicts; beat crontabs are read in UTC.
app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_default_queue="default",
    result_expires=86400,
)

# ---------------------------------------------------------------------------
# Beat schedule
# ---------------------------------------------------------------------------

app.conf.beat_schedule = {
    # 1. Open renewals for expiring policies, then sweep overdue tasks
    "run-renewal-scan": {
        "task": "renewdesk.tasks.run_renewal_scan",
        "schedule": crontab(hour=1, minute=0),
        "options": {"queue": "renewals"},
    },
    # 2. Overdue sweep between daily scans
    "sweep-overdue-tasks": {
        "task": "renewdesk.tasks.sweep_overdue_tasks",
        "schedule": crontab(minute=15),
        "options": {"queue": "renewals"},
    },
    # 3. Log the renewals that need attention before the working day
    "escalation-digest": {
        "task": "renewdesk.tasks.escalation_digest",
        "schedule": crontab(hour=7, minute=0),
        "options": {"queue": "default"},
    },
}

logger.info(
    "Celery app configured: broker=%s tasks=%d",
    settings.redis_url,
    len(app.conf.beat_schedule),
)
