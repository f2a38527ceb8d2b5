"""
Process-local transaction attempt bookkeeping.

Attempts exist for observability and retry decisions only; they are never
ledger state. Each submission owns its own TransactionLog so the counter is
scoped to one request.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class AttemptOutcome(str, Enum):
    """How a transaction attempt ended."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class TransactionAttempt:
    """One execute() call as seen by the orchestrator."""

    ordinal: int
    kind: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    digest: Optional[str] = None
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    duration_ms: Optional[int] = None
    _start: float = field(default_factory=time.perf_counter, repr=False)

    def finish(self, outcome: AttemptOutcome, digest: Optional[str] = None) -> None:
        self.outcome = outcome
        if digest:
            self.digest = digest
        self.duration_ms = int((time.perf_counter() - self._start) * 1000)

    def as_log_fields(self) -> dict:
        return {
            "tx_ordinal": self.ordinal,
            "tx_kind": self.kind,
            "digest": self.digest,
            "outcome": self.outcome.value,
            "duration_ms": self.duration_ms,
        }


class TransactionLog:
    """Request-local, ordered list of transaction attempts."""

    def __init__(self) -> None:
        self._attempts: List[TransactionAttempt] = []

    def begin(self, kind: str) -> TransactionAttempt:
        attempt = TransactionAttempt(ordinal=len(self._attempts) + 1, kind=kind)
        self._attempts.append(attempt)
        return attempt

    @property
    def attempts(self) -> List[TransactionAttempt]:
        return list(self._attempts)

    def __len__(self) -> int:
        return len(self._attempts)
