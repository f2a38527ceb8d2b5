"""
Content-addressed blob store client.

Storing a blob is a two-phase protocol:

1. prepare()  - derive the content id and the storage-registration payload.
2. The caller executes the registration payload and waits for confirmation.
3. upload()   - hand the bytes plus the confirmed registration to the
                publisher, which distributes them and certifies the blob.

Upload without a confirmed registration is refused by the publisher, which is
why the registration result is a required argument.
"""

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from gigescrow.kernel.events.event_types import BlobRegisteredEvent, find_event
from gigescrow.kernel.ledger import transactions
from gigescrow.kernel.ledger.executor import TransactionResult
from gigescrow.kernel.ledger.transactions import TransactionPayload
from gigescrow.logging_config import get_logger

logger = get_logger(__name__)


class BlobStoreError(Exception):
    """Encoding, upload or read failed. A registered blob may be left orphaned."""

    def __init__(self, message: str, content_id: Optional[str] = None):
        super().__init__(message)
        self.content_id = content_id


def compute_content_id(data: bytes) -> str:
    """Unpadded URL-safe base64 of the BLAKE2b-256 digest."""
    digest = hashlib.blake2b(data, digest_size=32).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PreparedBlob:
    content_id: str
    identifier: str
    data: bytes = field(repr=False)
    registration: TransactionPayload = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@runtime_checkable
class BlobStore(Protocol):
    def prepare(self, data: bytes, identifier: str, *, owner: str) -> PreparedBlob:
        ...

    async def upload(self, prepared: PreparedBlob, registration: TransactionResult) -> str:
        ...

    async def read(self, content_id: str) -> bytes:
        ...


def _blob_object_id(registration: TransactionResult) -> Optional[str]:
    event = find_event(registration.events, "BlobRegistered")
    if isinstance(event, BlobRegisteredEvent) and event.object_id:
        return event.object_id
    for change in registration.created_objects:
        if str(change.get("objectType", "")).endswith("::blob::Blob"):
            return change.get("objectId")
    return None


def _uploaded_blob_id(body: Dict[str, Any]) -> Optional[str]:
    if "newlyCreated" in body:
        return ((body["newlyCreated"] or {}).get("blobObject") or {}).get("blobId")
    if "alreadyCertified" in body:
        return (body["alreadyCertified"] or {}).get("blobId")
    return None


class HttpBlobStore:
    """
    BlobStore backed by an HTTP publisher (writes) and aggregator (reads).

    Usage:
        store = HttpBlobStore(publisher_url, aggregator_url, storage_package_id="0x...")
        prepared = store.prepare(ciphertext, "report.pdf", owner=worker)
        registration = await executor.execute(prepared.registration)
        content_id = await store.upload(prepared, registration)
    """

    def __init__(
        self,
        publisher_url: str,
        aggregator_url: str,
        *,
        storage_package_id: str,
        epochs: int = 10,
        deletable: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.publisher_url = publisher_url.rstrip("/")
        self.aggregator_url = aggregator_url.rstrip("/")
        self.storage_package_id = storage_package_id
        self.epochs = epochs
        self.deletable = deletable
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def prepare(self, data: bytes, identifier: str, *, owner: str) -> PreparedBlob:
        if not data:
            raise BlobStoreError("Refusing to store an empty blob")
        content_id = compute_content_id(data)
        registration = transactions.register_blob(
            self.storage_package_id,
            content_id=content_id,
            size=len(data),
            epochs=self.epochs,
            deletable=self.deletable,
            owner=owner,
        )
        return PreparedBlob(
            content_id=content_id,
            identifier=identifier,
            data=data,
            registration=registration,
        )

    async def upload(self, prepared: PreparedBlob, registration: TransactionResult) -> str:
        """
        Upload the bytes against a confirmed registration and return the content id.

        Raises:
            BlobStoreError: Registration not confirmed, transport failure,
                or the publisher derived a different content id
        """
        if not registration.confirmed:
            raise BlobStoreError("Registration is not confirmed", content_id=prepared.content_id)

        params: Dict[str, Any] = {
            "epochs": self.epochs,
            "tx_id": registration.digest,
        }
        object_id = _blob_object_id(registration)
        if object_id:
            params["blob_object_id"] = object_id
        if self.deletable:
            params["deletable"] = "true"

        try:
            resp = await self._client.put(
                f"{self.publisher_url}/v1/blobs",
                params=params,
                content=prepared.data,
                headers={"X-Blob-Identifier": prepared.identifier},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Blob upload failed: {exc}", content_id=prepared.content_id) from exc
        except ValueError as exc:
            raise BlobStoreError("Publisher returned invalid JSON", content_id=prepared.content_id) from exc

        blob_id = _uploaded_blob_id(body)
        if blob_id != prepared.content_id:
            raise BlobStoreError(
                f"Publisher stored {blob_id!r}, expected {prepared.content_id!r}",
                content_id=prepared.content_id,
            )
        logger.info(
            "Blob certified",
            extra={"content_id": blob_id, "size": prepared.size, "registration_digest": registration.digest},
        )
        return blob_id

    async def read(self, content_id: str) -> bytes:
        try:
            resp = await self._client.get(f"{self.aggregator_url}/v1/blobs/{content_id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Blob read failed: {exc}", content_id=content_id) from exc
        return resp.content

    async def aclose(self) -> None:
        await self._client.aclose()
