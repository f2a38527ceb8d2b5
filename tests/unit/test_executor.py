"""Unit tests for the signer and confirmation-polling executor."""

import json

import httpx
import pytest

from gigescrow.kernel.ledger import transactions
from gigescrow.kernel.ledger.errors import (
    ConfirmationTimeoutError,
    SignerRejectedError,
    TransactionFailedError,
)
from gigescrow.kernel.ledger.executor import LedgerTransactionExecutor, RemoteSigner, TransactionResult
from gigescrow.kernel.ledger.rpc import JsonRpcClient
from gigescrow.kernel.ledger.transactions import TransactionKind

SENDER = "0x" + "a1" * 32


def _payload():
    return transactions.start_job("0x77", job_id="0x1", profile_id="0x2")


def _block(digest: str, status: str = "success", error=None) -> dict:
    return {
        "digest": digest,
        "effects": {"status": {"status": status, **({"error": error} if error else {})}},
        "events": [
            {
                "type": "0x77::job_escrow::JobStateChanged",
                "parsedJson": {"job_id": "0x1", "old_state": 1, "new_state": 2},
            }
        ],
        "objectChanges": [
            {"type": "mutated", "objectId": "0x1"},
            {"type": "created", "objectId": "0xnew", "objectType": "0x77::x::Y"},
        ],
    }


_DEFAULT_BLOCK = object()


class FakeNode:
    """Signer + full node behind one MockTransport."""

    def __init__(self, *, signer_response=None, visible_after: int = 0, block=_DEFAULT_BLOCK):
        self.signer_response = signer_response or httpx.Response(200, json={"digest": "D1"})
        self.visible_after = visible_after
        self.block = _block("D1") if block is _DEFAULT_BLOCK else block
        self.signer_requests = []
        self.rpc_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/transactions":
            self.signer_requests.append(json.loads(request.content))
            if isinstance(self.signer_response, Exception):
                raise self.signer_response
            return self.signer_response
        body = json.loads(request.content)
        assert body["method"] == "sui_getTransactionBlock"
        self.rpc_calls += 1
        if self.rpc_calls <= self.visible_after:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "Could not find"}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": self.block})


def _executor(node: FakeNode, timeout: float = 1.0) -> LedgerTransactionExecutor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(node.handler))
    signer = RemoteSigner("http://signer.test", SENDER, client=client)
    rpc = JsonRpcClient("http://node.test/", client=client)
    return LedgerTransactionExecutor(signer, rpc, confirmation_timeout=timeout, poll_interval=0.01)


class TestLedgerTransactionExecutor:
    @pytest.mark.asyncio
    async def test_confirmed_after_polling(self):
        node = FakeNode(visible_after=2)
        result = await _executor(node).execute(_payload())

        assert isinstance(result, TransactionResult)
        assert result.confirmed
        assert result.digest == "D1"
        assert result.status == "success"
        assert node.rpc_calls == 3
        assert result.events[0].short_type == "JobStateChanged"
        assert [c["objectId"] for c in result.created_objects] == ["0xnew"]

    @pytest.mark.asyncio
    async def test_signer_request_body(self):
        node = FakeNode()
        await _executor(node).execute(_payload())
        sent = node.signer_requests[0]
        assert sent["sender"] == SENDER
        assert sent["transaction"]["kind"] == TransactionKind.START_JOB.value
        assert sent["transaction"]["target"] == "0x77::job_escrow::start_job"

    @pytest.mark.asyncio
    async def test_aborted_transaction(self):
        node = FakeNode(block=_block("D1", status="failure", error="MoveAbort(job_escrow, 4)"))
        with pytest.raises(TransactionFailedError) as exc_info:
            await _executor(node).execute(_payload())
        assert exc_info.value.digest == "D1"
        assert "MoveAbort" in exc_info.value.status_error

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self):
        node = FakeNode(visible_after=10_000)
        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await _executor(node, timeout=0.05).execute(_payload())
        assert exc_info.value.digest == "D1"
        assert exc_info.value.waited_seconds >= 0.05
        assert node.rpc_calls >= 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("block", [None, {}, {"digest": "D1"}, ["not", "a", "block"]])
    async def test_block_without_effects_keeps_polling(self, block):
        node = FakeNode(block=block)
        with pytest.raises(ConfirmationTimeoutError):
            await _executor(node, timeout=0.03).execute(_payload())
        assert node.rpc_calls >= 2


class TestRemoteSigner:
    @pytest.mark.asyncio
    async def test_declined(self):
        node = FakeNode(signer_response=httpx.Response(400, json={"error": "user rejected"}))
        with pytest.raises(SignerRejectedError, match="user rejected"):
            await _executor(node).execute(_payload())
        assert node.rpc_calls == 0

    @pytest.mark.asyncio
    async def test_unreachable_is_rejection(self):
        node = FakeNode(signer_response=httpx.ConnectError("refused"))
        with pytest.raises(SignerRejectedError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    async def test_lost_response_is_ambiguous(self):
        node = FakeNode(signer_response=httpx.ReadTimeout("timed out"))
        with pytest.raises(ConfirmationTimeoutError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    async def test_server_error_is_ambiguous(self):
        node = FakeNode(signer_response=httpx.Response(503, text="unavailable"))
        with pytest.raises(ConfirmationTimeoutError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    async def test_missing_digest_is_ambiguous(self):
        node = FakeNode(signer_response=httpx.Response(200, json={}))
        with pytest.raises(ConfirmationTimeoutError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    async def test_non_object_error_body_is_rejection(self):
        node = FakeNode(signer_response=httpx.Response(400, json=["user", "rejected"]))
        with pytest.raises(SignerRejectedError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["D1"], "D1", {"digest": None}])
    async def test_malformed_digest_body_is_ambiguous(self, body):
        node = FakeNode(signer_response=httpx.Response(200, json=body))
        with pytest.raises(ConfirmationTimeoutError):
            await _executor(node).execute(_payload())

    @pytest.mark.asyncio
    async def test_shared_client_outlives_signers(self):
        node = FakeNode()
        http = httpx.AsyncClient(transport=httpx.MockTransport(node.handler))
        first = RemoteSigner("http://signer.test", SENDER, client=http)
        second = RemoteSigner("http://signer.test", "0x" + "b2" * 32, client=http)

        await first.aclose()
        assert await second.sign_and_submit(_payload()) == "D1"
        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        signer = RemoteSigner("http://signer.test", SENDER)
        await signer.aclose()
        assert signer._client.is_closed
