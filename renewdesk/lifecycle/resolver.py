"""Task template resolution and task instantiation for new renewals."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from renewdesk.lifecycle.defaults import DEFAULT_TASK_TEMPLATES
from renewdesk.models import (
    PolicyType,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    TaskTemplate,
)
from renewdesk.stores.base import TaskTemplateStore

logger = logging.getLogger("renewdesk.lifecycle.resolver")


class TaskTemplateResolver:
    """Chooses the checklist a renewal of a given policy type starts with.

    Custom templates (scoped to the policy type, or system-wide) win outright
    when at least one is active.  Otherwise the fallback set is used in full.
    The two are never merged.
    """

    def __init__(
        self,
        template_store: TaskTemplateStore,
        defaults: Sequence[TaskTemplate] = DEFAULT_TASK_TEMPLATES,
    ) -> None:
        self._store = template_store
        self._defaults = tuple(defaults)

    async def resolve(self, policy_type: PolicyType) -> list[TaskTemplate]:
        custom = await self._store.find_active(policy_type)
        if custom:
            logger.debug(
                "Using %d custom templates for policy_type=%s",
                len(custom),
                policy_type.value,
            )
            return custom
        logger.debug(
            "No custom templates for policy_type=%s; using %d defaults",
            policy_type.value,
            len(self._defaults),
        )
        return [t.model_copy() for t in self._defaults]


def instantiate_tasks(
    renewal_id: UUID,
    due_date: datetime,
    templates: Sequence[TaskTemplate],
) -> list[Task]:
    """Build one pending task per template, dated back from *due_date*.

    Missing priority / category fall back to medium / other; ``order`` is
    copied from the template.
    """
    return [
        Task(
            renewal_id=renewal_id,
            name=template.name,
            description=template.description,
            due_date=due_date - timedelta(days=template.days_before_due),
            status=TaskStatus.PENDING,
            priority=template.priority or TaskPriority.MEDIUM,
            category=template.category or TaskCategory.OTHER,
            order=template.order,
        )
        for template in templates
    ]
