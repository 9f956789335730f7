"""Built-in renewal checklist used when no custom templates are configured.

Thirteen steps running from data collection 90 days out to policy delivery on
the due date.  This is configuration data: it is handed to
:class:`~renewdesk.lifecycle.resolver.TaskTemplateResolver` by whoever builds
the engine, and ``seed_default_templates`` copies it into a template store.
"""

from __future__ import annotations

from renewdesk.models import TaskCategory, TaskPriority, TaskTemplate

DEFAULT_TASK_TEMPLATES: tuple[TaskTemplate, ...] = (
    TaskTemplate(
        name="Request updated exposures",
        description="Collect revenue, payroll, locations, fleet info",
        category=TaskCategory.DATA_COLLECTION,
        priority=TaskPriority.HIGH,
        days_before_due=90,
        order=1,
    ),
    TaskTemplate(
        name="Request loss runs",
        description="Get 5-year claims history from current carrier",
        category=TaskCategory.DATA_COLLECTION,
        priority=TaskPriority.HIGH,
        days_before_due=85,
        order=2,
    ),
    TaskTemplate(
        name="Review policy for coverage gaps",
        description="Analyze current coverage vs exposures",
        category=TaskCategory.DATA_COLLECTION,
        priority=TaskPriority.MEDIUM,
        days_before_due=80,
        order=3,
    ),
    TaskTemplate(
        name="Prepare submission",
        description="Create marketing submission for carriers",
        category=TaskCategory.MARKETING,
        priority=TaskPriority.HIGH,
        days_before_due=75,
        order=4,
    ),
    TaskTemplate(
        name="Send to markets",
        description="Submit to 3-5 carriers for quotes",
        category=TaskCategory.MARKETING,
        priority=TaskPriority.HIGH,
        days_before_due=70,
        order=5,
    ),
    TaskTemplate(
        name="Follow up on quotes",
        description="Check status with underwriters",
        category=TaskCategory.QUOTE_FOLLOW_UP,
        priority=TaskPriority.MEDIUM,
        days_before_due=55,
        order=6,
    ),
    TaskTemplate(
        name="Compare quotes received",
        description="Analyze coverage and pricing differences",
        category=TaskCategory.QUOTE_FOLLOW_UP,
        priority=TaskPriority.HIGH,
        days_before_due=45,
        order=7,
    ),
    TaskTemplate(
        name="Prepare proposal",
        description="Create client-facing renewal proposal",
        category=TaskCategory.PROPOSAL,
        priority=TaskPriority.HIGH,
        days_before_due=35,
        order=8,
    ),
    TaskTemplate(
        name="Schedule renewal meeting",
        description="Present options to client",
        category=TaskCategory.CLIENT_COMMUNICATION,
        priority=TaskPriority.HIGH,
        days_before_due=30,
        order=9,
    ),
    TaskTemplate(
        name="Get client decision",
        description="Confirm selected carrier and coverage",
        category=TaskCategory.CLIENT_COMMUNICATION,
        priority=TaskPriority.URGENT,
        days_before_due=20,
        order=10,
    ),
    TaskTemplate(
        name="Bind coverage",
        description="Request binder from selected carrier",
        category=TaskCategory.BINDING,
        priority=TaskPriority.URGENT,
        days_before_due=14,
        order=11,
    ),
    TaskTemplate(
        name="Issue certificates",
        description="Generate COIs for certificate holders",
        category=TaskCategory.POST_BIND,
        priority=TaskPriority.HIGH,
        days_before_due=7,
        order=12,
    ),
    TaskTemplate(
        name="Deliver policy documents",
        description="Send final policy to client",
        category=TaskCategory.POST_BIND,
        priority=TaskPriority.MEDIUM,
        days_before_due=0,
        order=13,
    ),
)
