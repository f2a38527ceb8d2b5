"""Unit tests for the content-addressed blob store client."""

import base64
import hashlib

import httpx
import pytest

from gigescrow.engines.storage.blob_store import BlobStoreError, HttpBlobStore, compute_content_id
from gigescrow.kernel.events.event_types import parse_events
from gigescrow.kernel.ledger.executor import TransactionResult
from gigescrow.kernel.ledger.transactions import TransactionKind
from tests.fakes import WORKER

STORAGE_PKG = "0x2"
DATA = b"ciphertext bytes"


def _registration(*, confirmed=True, object_id="0xb10b", via_event=True) -> TransactionResult:
    events, created = [], []
    if via_event:
        events = parse_events([{
            "type": f"{STORAGE_PKG}::events::BlobRegistered",
            "parsedJson": {"blob_id": compute_content_id(DATA), "size": str(len(DATA)), "object_id": object_id},
        }])
    else:
        created = [{"type": "created", "objectId": object_id, "objectType": f"{STORAGE_PKG}::blob::Blob"}]
    return TransactionResult(
        confirmed=confirmed,
        digest="reg-digest",
        status="success",
        events=events,
        created_objects=created,
    )


class Publisher:
    def __init__(self, response=None):
        self.requests = []
        self.response = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if request.url.path.endswith("/missing"):
                return httpx.Response(404)
            return httpx.Response(200, content=DATA)
        if self.response is not None:
            return self.response
        return httpx.Response(
            200,
            json={"newlyCreated": {"blobObject": {"blobId": compute_content_id(request.content)}}},
        )


def _store(publisher: Publisher, **kwargs) -> HttpBlobStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(publisher.handler))
    return HttpBlobStore(
        "http://publisher.test",
        "http://aggregator.test",
        storage_package_id=STORAGE_PKG,
        epochs=5,
        client=client,
        **kwargs,
    )


def test_content_id_is_unpadded_urlsafe_blake2b():
    expected = base64.urlsafe_b64encode(hashlib.blake2b(DATA, digest_size=32).digest()).rstrip(b"=").decode()
    assert compute_content_id(DATA) == expected
    assert "=" not in compute_content_id(DATA)
    assert compute_content_id(DATA) != compute_content_id(DATA + b"!")


class TestPrepare:
    def test_registration_payload(self):
        prepared = _store(Publisher()).prepare(DATA, "site.zip", owner=WORKER)
        assert prepared.content_id == compute_content_id(DATA)
        assert prepared.size == len(DATA)
        assert prepared.registration.kind == TransactionKind.REGISTER_BLOB
        assert prepared.registration.target == f"{STORAGE_PKG}::system::register_blob"
        values = [a.value for a in prepared.registration.arguments]
        assert values[1:] == [str(len(DATA)), "5", False, WORKER]

    def test_empty_refused(self):
        with pytest.raises(BlobStoreError):
            _store(Publisher()).prepare(b"", "x", owner=WORKER)


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_against_registration(self):
        publisher = Publisher()
        store = _store(publisher)
        prepared = store.prepare(DATA, "site.zip", owner=WORKER)

        content_id = await store.upload(prepared, _registration())

        assert content_id == prepared.content_id
        request = publisher.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/v1/blobs"
        assert request.url.params["tx_id"] == "reg-digest"
        assert request.url.params["blob_object_id"] == "0xb10b"
        assert request.url.params["epochs"] == "5"
        assert "deletable" not in request.url.params
        assert request.headers["X-Blob-Identifier"] == "site.zip"
        assert request.content == DATA

    @pytest.mark.asyncio
    async def test_blob_object_from_created_objects(self):
        publisher = Publisher()
        store = _store(publisher, deletable=True)
        prepared = store.prepare(DATA, "site.zip", owner=WORKER)
        await store.upload(prepared, _registration(via_event=False, object_id="0xcafe"))
        params = publisher.requests[0].url.params
        assert params["blob_object_id"] == "0xcafe"
        assert params["deletable"] == "true"

    @pytest.mark.asyncio
    async def test_already_certified(self):
        publisher = Publisher(httpx.Response(200, json={"alreadyCertified": {"blobId": compute_content_id(DATA)}}))
        store = _store(publisher)
        prepared = store.prepare(DATA, "x", owner=WORKER)
        assert await store.upload(prepared, _registration()) == prepared.content_id

    @pytest.mark.asyncio
    async def test_unconfirmed_registration_refused(self):
        publisher = Publisher()
        store = _store(publisher)
        prepared = store.prepare(DATA, "x", owner=WORKER)
        with pytest.raises(BlobStoreError):
            await store.upload(prepared, _registration(confirmed=False))
        assert publisher.requests == []

    @pytest.mark.asyncio
    async def test_content_id_mismatch(self):
        publisher = Publisher(httpx.Response(200, json={"newlyCreated": {"blobObject": {"blobId": "other"}}}))
        store = _store(publisher)
        prepared = store.prepare(DATA, "x", owner=WORKER)
        with pytest.raises(BlobStoreError) as exc_info:
            await store.upload(prepared, _registration())
        assert exc_info.value.content_id == prepared.content_id

    @pytest.mark.asyncio
    async def test_publisher_error(self):
        store = _store(Publisher(httpx.Response(500, text="nodes unavailable")))
        prepared = store.prepare(DATA, "x", owner=WORKER)
        with pytest.raises(BlobStoreError, match="upload failed"):
            await store.upload(prepared, _registration())


class TestRead:
    @pytest.mark.asyncio
    async def test_read(self):
        publisher = Publisher()
        assert await _store(publisher).read("abc") == DATA
        assert str(publisher.requests[0].url) == "http://aggregator.test/v1/blobs/abc"

    @pytest.mark.asyncio
    async def test_read_missing(self):
        with pytest.raises(BlobStoreError) as exc_info:
            await _store(Publisher()).read("missing")
        assert exc_info.value.content_id == "missing"
