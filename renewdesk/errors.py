"""Exception types raised by the RenewDesk engine and its stores."""

from __future__ import annotations

from uuid import UUID


class RenewDeskError(Exception):
    """Base class for all RenewDesk errors."""


class InvalidRequest(RenewDeskError, ValueError):
    """A caller supplied arguments the engine cannot act on."""


class RecordNotFound(RenewDeskError, LookupError):
    """A record looked up by id does not exist in its store."""

    def __init__(self, kind: str, record_id: UUID | str) -> None:
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class OpenRenewalExists(RenewDeskError):
    """A renewal in a blocking status already exists for the policy.

    Raised by :meth:`RenewalStore.create` when the create-if-absent check
    fails, so that concurrent scans cannot open two renewals for one policy.
    """

    def __init__(self, policy_id: UUID) -> None:
        super().__init__(f"An open renewal already exists for policy {policy_id}")
        self.policy_id = policy_id


class StoreUnavailable(RenewDeskError):
    """The backing store could not be reached (connection or driver failure)."""
