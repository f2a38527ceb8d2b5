"""
Ledger boundary - queries, transaction payloads, execution.
"""

from gigescrow.kernel.ledger.client import LedgerClient, LedgerReader
from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    LedgerError,
    LedgerQueryError,
    ObjectNotFoundError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.executor import (
    LedgerTransactionExecutor,
    RemoteSigner,
    Signer,
    TransactionExecutor,
    TransactionResult,
)
from gigescrow.kernel.ledger.rpc import JsonRpcClient, JsonRpcError
from gigescrow.kernel.ledger.transactions import TransactionKind, TransactionPayload

__all__ = [
    "LedgerClient",
    "LedgerReader",
    "LedgerError",
    "LedgerQueryError",
    "ObjectNotFoundError",
    "SignerRejectedError",
    "TransactionFailedError",
    "ConfirmationTimeoutError",
    "LedgerTransactionExecutor",
    "RemoteSigner",
    "Signer",
    "TransactionExecutor",
    "TransactionResult",
    "JsonRpcClient",
    "JsonRpcError",
    "TransactionKind",
    "TransactionPayload",
]
