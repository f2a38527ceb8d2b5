"""
Minimal JSON-RPC 2.0 client for the ledger full node.
"""

import itertools
from typing import Any, List, Optional

import httpx

from gigescrow.kernel.ledger.errors import LedgerQueryError
from gigescrow.logging_config import get_logger

logger = get_logger(__name__)


class JsonRpcError(LedgerQueryError):
    """Error object returned by the node."""

    def __init__(self, method: str, code: Optional[int], message: str):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.rpc_message = message


class JsonRpcClient:
    """
    Thin async JSON-RPC client.

    Usage:
        rpc = JsonRpcClient("https://fullnode.testnet.sui.io:443")
        obj = await rpc.call("sui_getObject", [object_id, {"showContent": True}])
    """

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.url = url
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._ids = itertools.count(1)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Invoke a method and return its `result`.

        Raises:
            JsonRpcError: When the node answers with an error object
            LedgerQueryError: On transport failures or malformed responses
        """
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            resp = await self.client.post(self.url, json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise LedgerQueryError(f"{method} transport error: {exc}") from exc
        except ValueError as exc:
            raise LedgerQueryError(f"{method} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise LedgerQueryError(f"{method} response is not a JSON object")
        error = data.get("error")
        if isinstance(error, dict):
            raise JsonRpcError(method, error.get("code"), str(error.get("message", "")))
        if error:
            raise JsonRpcError(method, None, str(error))
        if "result" not in data:
            raise LedgerQueryError(f"{method} response has no result")
        return data["result"]

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
