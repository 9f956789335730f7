"""RenewDesk — Renewal lifecycle and workflow orchestration engine for brokers.

RenewDesk watches a broker's book of business for expiring policies, opens a
renewal for each one with a risk score attached, lays out a dated checklist of
workflow tasks, sweeps late tasks into an overdue state, surfaces renewals that
need broker attention, and compares competing carrier quotes against the
expiring premium.

Storage, scheduling, and presentation are collaborators: the engine talks to
them through the store interfaces in :mod:`renewdesk.stores`.
"""

__version__ = "0.1.0"
