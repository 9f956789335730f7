"""Store collaborators — abstract interfaces plus in-memory and SQL backends."""

from renewdesk.stores.base import (
    ActivityLog,
    ClientStore,
    PolicyStore,
    QuoteStore,
    RenewalStore,
    Stores,
    TaskStore,
    TaskTemplateStore,
)
from renewdesk.stores.memory import MemoryState, memory_stores

__all__ = [
    "ActivityLog",
    "ClientStore",
    "MemoryState",
    "PolicyStore",
    "QuoteStore",
    "RenewalStore",
    "Stores",
    "TaskStore",
    "TaskTemplateStore",
    "memory_stores",
]
