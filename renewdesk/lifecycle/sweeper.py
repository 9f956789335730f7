"""Overdue sweeper — moves late open tasks to the overdue status."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from renewdesk.models import utc_now
from renewdesk.stores.base import TaskStore

logger = logging.getLogger("renewdesk.lifecycle.sweeper")


class OverdueSweeper:
    """Transitions pending / in-progress tasks whose due date has passed.

    The store only matches tasks still in an open status, so a second sweep
    with nothing changed in between moves zero tasks.
    """

    def __init__(self, tasks: TaskStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._tasks = tasks
        self._clock = clock

    async def sweep(self) -> int:
        count = await self._tasks.mark_overdue(before=self._clock())
        if count > 0:
            logger.info("Marked %d tasks as overdue", count)
        return count
