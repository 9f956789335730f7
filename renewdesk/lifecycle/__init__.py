"""Renewal lifecycle — scoring, opening, task workflow, and escalation.

Exports the components the engine wires together:

- :func:`score_risk` / :class:`RiskThresholds` — pure risk scoring
- :class:`TaskTemplateResolver` — custom-or-default checklist selection
- :class:`RenewalOpener` — opens one renewal with its tasks
- :class:`ExpiringPolicyScanner` — batch driver over expiring policies
- :class:`OverdueSweeper` — moves late tasks to overdue
- :class:`EscalationDetector` — renewals needing broker attention
"""

from renewdesk.lifecycle.defaults import DEFAULT_TASK_TEMPLATES
from renewdesk.lifecycle.escalation import EscalationDetector, EscalationEntry
from renewdesk.lifecycle.opener import OpenOutcome, RenewalOpener
from renewdesk.lifecycle.resolver import TaskTemplateResolver, instantiate_tasks
from renewdesk.lifecycle.risk import RiskAssessment, RiskThresholds, score_risk
from renewdesk.lifecycle.scanner import ExpiringPolicyScanner, ScanResult
from renewdesk.lifecycle.sweeper import OverdueSweeper

__all__ = [
    "DEFAULT_TASK_TEMPLATES",
    "EscalationDetector",
    "EscalationEntry",
    "ExpiringPolicyScanner",
    "OpenOutcome",
    "OverdueSweeper",
    "RenewalOpener",
    "RiskAssessment",
    "RiskThresholds",
    "ScanResult",
    "TaskTemplateResolver",
    "instantiate_tasks",
    "score_risk",
]
