"""
HTTP client for the access-control/encryption gateway.

The gateway fronts the key servers and the access-list contract:

    POST /v1/access-lists  {"audience": [...]}                 -> {"list_id", "capability_id"}
    POST /v1/encrypt       {"identity", "threshold", "data"}   -> {"ciphertext"}
    POST /v1/decrypt       {"identity", "requester", "ciphertext"} -> {"plaintext"}

Binary fields travel as standard base64.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional

import httpx

from gigescrow.engines.encryption.service import (
    AccessListHandle,
    EncryptedPayload,
    EncryptionFailureReason,
    EncryptionServiceError,
    build_identity,
    new_nonce,
    resolve_audience,
)
from gigescrow.kernel.identity.address import normalize_address
from gigescrow.logging_config import get_logger

logger = get_logger(__name__)


class GatewayEncryptionService:
    """
    EncryptionService backed by the HTTP gateway.

    Usage:
        encryption = GatewayEncryptionService("http://localhost:9200", threshold=1)
        handle = await encryption.create_access_list([job.client])
        payload = await encryption.encrypt(data, handle.list_id)
    """

    def __init__(
        self,
        base_url: str,
        *,
        threshold: int = 1,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.threshold = threshold
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(
        self,
        path: str,
        body: Dict[str, Any],
        client_error_reason: EncryptionFailureReason,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise EncryptionServiceError(
                f"Encryption gateway unreachable: {exc}",
                reason=EncryptionFailureReason.GATEWAY,
            ) from exc

        if resp.status_code == 403:
            raise EncryptionServiceError(
                "Requester is not on the access list",
                reason=EncryptionFailureReason.ACCESS_DENIED,
            )
        if 400 <= resp.status_code < 500:
            raise EncryptionServiceError(
                f"Gateway rejected {path}: {resp.text}",
                reason=client_error_reason,
            )
        if resp.status_code >= 500:
            raise EncryptionServiceError(
                f"Gateway error {resp.status_code} on {path}",
                reason=EncryptionFailureReason.GATEWAY,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise EncryptionServiceError(
                f"Gateway returned invalid JSON for {path}",
                reason=EncryptionFailureReason.GATEWAY,
            ) from exc

    @staticmethod
    def _decode(value: Any, what: str) -> bytes:
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, TypeError, ValueError) as exc:
            raise EncryptionServiceError(
                f"Gateway returned malformed {what}",
                reason=EncryptionFailureReason.GATEWAY,
            ) from exc

    async def create_access_list(self, audience: List[str]) -> AccessListHandle:
        members = resolve_audience(audience)
        data = await self._post(
            "/v1/access-lists",
            {"audience": members},
            EncryptionFailureReason.AUDIENCE_RESOLUTION,
        )
        try:
            handle = AccessListHandle(
                list_id=normalize_address(data["list_id"]),
                capability_id=normalize_address(data["capability_id"]),
            )
        except (KeyError, ValueError) as exc:
            raise EncryptionServiceError(
                "Gateway response is missing the access-list handle",
                reason=EncryptionFailureReason.GATEWAY,
            ) from exc
        logger.info(
            "Access list created",
            extra={"list_id": handle.list_id, "audience_size": len(members)},
        )
        return handle

    async def encrypt(self, data: bytes, list_id: str) -> EncryptedPayload:
        nonce = new_nonce()
        body = {
            "identity": build_identity(list_id, nonce),
            "threshold": self.threshold,
            "data": base64.b64encode(data).decode("ascii"),
        }
        result = await self._post("/v1/encrypt", body, EncryptionFailureReason.KEY_DERIVATION)
        ciphertext = self._decode(result.get("ciphertext"), "ciphertext")
        if not ciphertext:
            raise EncryptionServiceError(
                "Gateway returned an empty ciphertext",
                reason=EncryptionFailureReason.KEY_DERIVATION,
            )
        logger.info(
            "Payload encrypted",
            extra={"list_id": list_id, "plaintext_bytes": len(data), "ciphertext_bytes": len(ciphertext)},
        )
        return EncryptedPayload(ciphertext=ciphertext, nonce=nonce)

    async def decrypt(self, ciphertext: bytes, list_id: str, nonce: str, actor: str) -> bytes:
        body = {
            "identity": build_identity(list_id, nonce),
            "requester": normalize_address(actor),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
        }
        result = await self._post("/v1/decrypt", body, EncryptionFailureReason.KEY_DERIVATION)
        return self._decode(result.get("plaintext"), "plaintext")

    async def aclose(self) -> None:
        await self._client.aclose()
