"""
Ledger events returned with confirmed transactions.
"""

from gigescrow.kernel.events.event_types import (
    BlobCertifiedEvent,
    BlobRegisteredEvent,
    JobCompletionClaimedEvent,
    JobStateChangedEvent,
    LedgerEvent,
    MilestoneSubmittedEvent,
    find_event,
    parse_event,
    parse_events,
)

__all__ = [
    "LedgerEvent",
    "BlobRegisteredEvent",
    "BlobCertifiedEvent",
    "JobStateChangedEvent",
    "MilestoneSubmittedEvent",
    "JobCompletionClaimedEvent",
    "find_event",
    "parse_event",
    "parse_events",
]
