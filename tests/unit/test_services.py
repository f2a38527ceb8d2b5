"""Unit tests for the per-actor orchestrator registry."""

import asyncio

import pytest

from gigescrow.kernel.models.job import JobState
from gigescrow.services import ServiceRegistry
from tests.fakes import ESCROW_PACKAGE, JOB_ID, PREVIEW_URL, STRANGER, WORKER, make_job


@pytest.fixture
def built_for() -> list:
    return []


@pytest.fixture
def registry(ledger, encryption, blob_store, executor, built_for) -> ServiceRegistry:
    def executor_factory(actor):
        built_for.append(actor)
        return executor

    return ServiceRegistry(
        ledger=ledger,
        encryption=encryption,
        blob_store=blob_store,
        executor_factory=executor_factory,
        package_id=ESCROW_PACKAGE,
        max_file_bytes=1024,
    )


@pytest.mark.asyncio
async def test_concurrent_leases_share_one_orchestrator(registry, built_for):
    async with registry.lease(WORKER) as first:
        async with registry.lease(WORKER.upper()) as second:
            assert first is second
        assert registry.active_actors == 1
    assert registry.active_actors == 0
    assert built_for == [WORKER]


@pytest.mark.asyncio
async def test_actors_get_separate_orchestrators(registry, built_for):
    async with registry.lease(WORKER) as worker_side, registry.lease(STRANGER) as other:
        assert worker_side is not other
        assert registry.active_actors == 2
    assert registry.active_actors == 0
    assert built_for == [WORKER, STRANGER]


@pytest.mark.asyncio
async def test_job_actions_build_nothing_up_front(registry, built_for):
    for i in range(20):
        registry.job_actions_for("0x" + f"{i:064x}")
    assert built_for == []
    assert registry.active_actors == 0


@pytest.mark.asyncio
async def test_detached_pipeline_keeps_orchestrator_until_done(registry, ledger, executor, deliverable):
    ledger.put(make_job(JobState.IN_PROGRESS))
    executor.gate = asyncio.Event()
    actions = registry.job_actions_for(WORKER)

    task = asyncio.create_task(actions.submit_deliverable(JOB_ID, 0, deliverable, PREVIEW_URL, WORKER))
    while not executor.payloads:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # The caller is gone but the pipeline still owns the orchestrator
    assert registry.active_actors == 1
    orchestrator = registry._orchestrators[WORKER]

    executor.gate.set()
    await orchestrator.drain()
    assert registry.active_actors == 0


@pytest.mark.asyncio
async def test_aclose_runs_closers_in_reverse(registry):
    closed = []

    async def closer(name):
        closed.append(name)

    registry.on_close(lambda: closer("rpc"))
    registry.on_close(lambda: closer("signer"))
    await registry.aclose()
    assert closed == ["signer", "rpc"]
