"""
Pytest fixtures for gigescrow tests.
"""

import pytest

from gigescrow.kernel.models.deliverable import DeliverableFile
from gigescrow.kernel.models.job import Job, Profile
from gigescrow.orchestration.deliverable_orchestrator import DeliverableOrchestrator
from tests.fakes import (
    ESCROW_PACKAGE,
    PROFILE_ID,
    WORKER,
    FakeBlobStore,
    FakeEncryptionService,
    FakeExecutor,
    FakeLedger,
    make_job,
)


@pytest.fixture
def encryption() -> FakeEncryptionService:
    return FakeEncryptionService()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.profiles[WORKER] = Profile(id=PROFILE_ID, owner=WORKER, username="alice")
    return fake


@pytest.fixture
def orchestrator(encryption, blob_store, executor) -> DeliverableOrchestrator:
    return DeliverableOrchestrator(
        encryption,
        blob_store,
        executor,
        package_id=ESCROW_PACKAGE,
        max_file_bytes=1024,
    )


@pytest.fixture
def job() -> Job:
    return make_job()


@pytest.fixture
def deliverable() -> DeliverableFile:
    return DeliverableFile(filename="site.zip", content=b"0123456789", content_type="application/zip")
