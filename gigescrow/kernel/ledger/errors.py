"""
Ledger adapter errors.

The split between SignerRejectedError and ConfirmationTimeoutError matters to
callers: the first means nothing reached the ledger, the second means the
transaction may or may not have landed.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for ledger adapter failures."""


class SignerRejectedError(LedgerError):
    """The signer declined or failed before anything was broadcast."""

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class TransactionFailedError(LedgerError):
    """The transaction was included but aborted, or validators rejected it."""

    def __init__(self, message: str, digest: Optional[str] = None, status_error: Optional[str] = None):
        super().__init__(message)
        self.digest = digest
        self.status_error = status_error


class ConfirmationTimeoutError(LedgerError):
    """Submitted (or possibly submitted), but inclusion was not observed in time."""

    def __init__(self, message: str, digest: Optional[str] = None, waited_seconds: Optional[float] = None):
        super().__init__(message)
        self.digest = digest
        self.waited_seconds = waited_seconds


class LedgerQueryError(LedgerError):
    """A read against the ledger failed."""


class ObjectNotFoundError(LedgerQueryError):
    """The requested object does not exist (or is not a readable Move object)."""

    def __init__(self, object_id: str):
        super().__init__(f"Object not found: {object_id}")
        self.object_id = object_id
