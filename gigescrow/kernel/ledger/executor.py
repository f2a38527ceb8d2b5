"""
Transaction execution: sign, submit, wait for durable inclusion.

`execute()` only returns once the ledger reports the transaction as included.
Three outcomes are distinguishable by the caller:

- returned TransactionResult          -> confirmed
- SignerRejectedError / TransactionFailedError -> rejected, nothing pending
- ConfirmationTimeoutError            -> ambiguous, re-query before retrying
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from gigescrow.kernel.events.event_types import LedgerEvent, parse_events
from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    LedgerQueryError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.rpc import JsonRpcClient
from gigescrow.kernel.ledger.transactions import TransactionPayload
from gigescrow.logging_config import get_logger

logger = get_logger(__name__)

_TX_RESPONSE_OPTIONS = {
    "showEffects": True,
    "showEvents": True,
    "showObjectChanges": True,
}


class TransactionResult(BaseModel):
    """Structured effects of a confirmed transaction."""

    confirmed: bool
    digest: str
    status: str
    status_error: Optional[str] = None
    effects: Dict[str, Any] = Field(default_factory=dict)
    events: List[LedgerEvent] = Field(default_factory=list)
    created_objects: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_rpc(cls, digest: str, block: Dict[str, Any]) -> "TransactionResult":
        effects = block.get("effects") or {}
        status = effects.get("status") or {}
        created = [
            change for change in (block.get("objectChanges") or [])
            if change.get("type") == "created"
        ]
        return cls(
            confirmed=True,
            digest=block.get("digest", digest),
            status=status.get("status", "unknown"),
            status_error=status.get("error"),
            effects=effects,
            events=parse_events(block.get("events")),
            created_objects=created,
        )


@runtime_checkable
class Signer(Protocol):
    """Signs a payload and broadcasts it, returning the provisional digest."""

    async def sign_and_submit(self, payload: TransactionPayload) -> str:
        ...


@runtime_checkable
class TransactionExecutor(Protocol):
    """Executes a payload and returns only after confirmation."""

    async def execute(self, payload: TransactionPayload) -> TransactionResult:
        ...


class RemoteSigner:
    """
    Signer backed by an HTTP signing service (wallet bridge, custody service).

    POST {base_url}/v1/transactions  {"sender": ..., "transaction": {...}}
      200 -> {"digest": "..."}
      4xx -> {"error": "..."}   declined, nothing broadcast
    """

    def __init__(
        self,
        base_url: str,
        sender: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        # A client passed in is shared and closed by its owner
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def sign_and_submit(self, payload: TransactionPayload) -> str:
        url = f"{self.base_url}/v1/transactions"
        body = {"sender": self.sender, "transaction": payload.to_wire()}
        try:
            resp = await self._client.post(url, json=body)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            # The request never reached the signer
            raise SignerRejectedError(f"Signer unreachable: {exc}", kind=payload.kind.value) from exc
        except httpx.HTTPError as exc:
            # Request was sent; the signer may have broadcast it
            raise ConfirmationTimeoutError(
                f"Signer response lost for {payload.kind.value}: {exc}",
            ) from exc

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            detail = (body.get("error") if isinstance(body, dict) else None) or resp.text
            if resp.status_code >= 500:
                raise ConfirmationTimeoutError(
                    f"Signer failed after accepting {payload.kind.value}: {detail}",
                )
            raise SignerRejectedError(f"Signer declined {payload.kind.value}: {detail}", kind=payload.kind.value)

        try:
            digest = resp.json()["digest"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ConfirmationTimeoutError(
                f"Signer returned no digest for {payload.kind.value}",
            ) from exc
        if not isinstance(digest, str) or not digest:
            raise ConfirmationTimeoutError(f"Signer returned no digest for {payload.kind.value}")
        return digest

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LedgerTransactionExecutor:
    """
    Executor that polls the full node until the submitted digest is included.

    The wait is bounded by `confirmation_timeout`; exceeding it raises
    ConfirmationTimeoutError and is never retried here.
    """

    def __init__(
        self,
        signer: Signer,
        rpc: JsonRpcClient,
        *,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 1.0,
    ):
        self.signer = signer
        self.rpc = rpc
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval

    async def execute(self, payload: TransactionPayload) -> TransactionResult:
        logger.info("Submitting transaction", extra={"tx_kind": payload.kind.value, "target": payload.target})
        digest = await self.signer.sign_and_submit(payload)
        logger.info("Transaction submitted", extra={"tx_kind": payload.kind.value, "digest": digest})

        result = await self.wait_for_confirmation(digest)
        if result.status != "success":
            raise TransactionFailedError(
                f"{payload.kind.value} aborted on-ledger: {result.status_error or result.status}",
                digest=digest,
                status_error=result.status_error,
            )
        logger.info(
            "Transaction confirmed",
            extra={"tx_kind": payload.kind.value, "digest": digest, "events": len(result.events)},
        )
        return result

    async def wait_for_confirmation(self, digest: str) -> TransactionResult:
        """Poll for the digest until included or the bounded wait expires."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.confirmation_timeout
        while True:
            try:
                block = await self.rpc.call(
                    "sui_getTransactionBlock",
                    [digest, _TX_RESPONSE_OPTIONS],
                )
            except LedgerQueryError as exc:
                # Not yet visible on this node, or a transient read failure
                logger.debug("Transaction not visible yet", extra={"digest": digest, "error": str(exc)})
            else:
                if isinstance(block, dict) and block.get("effects"):
                    return TransactionResult.from_rpc(digest, block)

            now = loop.time()
            if now >= deadline:
                waited = round(now - started, 3)
                logger.warning(
                    "Confirmation wait expired",
                    extra={"digest": digest, "waited_seconds": waited},
                )
                raise ConfirmationTimeoutError(
                    f"Transaction {digest} not confirmed within {self.confirmation_timeout}s",
                    digest=digest,
                    waited_seconds=waited,
                )
            await asyncio.sleep(min(self.poll_interval, deadline - now))
