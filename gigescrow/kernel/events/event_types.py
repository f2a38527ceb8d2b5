"""
Ledger event definitions using Pydantic for validation.

These are the payloads emitted by the escrow and storage contracts and
returned in a confirmed transaction's effects.
"""

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class LedgerEvent(BaseModel):
    """Base event structure: the fully-qualified event type plus its JSON body."""

    model_config = ConfigDict(extra="allow")

    event_type: str
    sender: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def short_type(self) -> str:
        """Event struct name without the package/module path, e.g. 'BlobRegistered'."""
        return self.event_type.split("<", 1)[0].rsplit("::", 1)[-1]


# Storage Events

class BlobRegisteredEvent(LedgerEvent):
    """Storage for a blob has been reserved and paid for."""

    blob_id: Optional[str] = None
    size: Optional[int] = None
    end_epoch: Optional[int] = None
    object_id: Optional[str] = None


class BlobCertifiedEvent(LedgerEvent):
    """Enough storage nodes hold the blob for it to be retrievable."""

    blob_id: Optional[str] = None


# Escrow Events

class JobStateChangedEvent(LedgerEvent):
    """Job state transition recorded by the escrow contract."""

    job_id: Optional[str] = None
    old_state: Optional[int] = None
    new_state: Optional[int] = None


class MilestoneSubmittedEvent(LedgerEvent):
    """A milestone deliverable has been recorded."""

    job_id: Optional[str] = None
    milestone_id: Optional[int] = None
    proof_blob_id: Optional[str] = None


class JobCompletionClaimedEvent(LedgerEvent):
    """The worker claimed a pending job completion."""

    job_id: Optional[str] = None
    amount: Optional[int] = None


_EVENT_CLASSES: Dict[str, Type[LedgerEvent]] = {
    "BlobRegistered": BlobRegisteredEvent,
    "BlobCertified": BlobCertifiedEvent,
    "JobStateChanged": JobStateChangedEvent,
    "MilestoneSubmitted": MilestoneSubmittedEvent,
    "JobCompletionClaimed": JobCompletionClaimedEvent,
}

_BASE_FIELDS = frozenset(LedgerEvent.model_fields)
_INT_FIELDS = frozenset({"milestone_id", "old_state", "new_state", "end_epoch", "size", "amount"})


def parse_event(raw: Dict[str, Any]) -> LedgerEvent:
    """
    Parse one event from a transaction response into a typed model.

    Unknown event types come back as a plain LedgerEvent.
    """
    event_type = raw.get("type", "")
    body = raw.get("parsedJson") or {}
    base = LedgerEvent(event_type=event_type, sender=raw.get("sender"), payload=body)
    cls = _EVENT_CLASSES.get(base.short_type, LedgerEvent)
    if cls is LedgerEvent:
        return base

    fields: Dict[str, Any] = {}
    for name in cls.model_fields:
        if name in _BASE_FIELDS or name not in body:
            continue
        value = body[name]
        if name in _INT_FIELDS and value is not None:
            value = int(value)
        elif isinstance(value, list):
            # vector<u8>
            value = bytes(value).decode("utf-8", errors="replace")
        fields[name] = value
    return cls(event_type=event_type, sender=raw.get("sender"), payload=body, **fields)


def parse_events(raw_events: Optional[List[Dict[str, Any]]]) -> List[LedgerEvent]:
    return [parse_event(e) for e in (raw_events or [])]


def find_event(events: List[LedgerEvent], short_type: str) -> Optional[LedgerEvent]:
    """Return the first event whose struct name matches, if any."""
    for event in events:
        if event.short_type == short_type:
            return event
    return None
