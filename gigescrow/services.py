"""
Service wiring for the API process.

Holds the long-lived HTTP clients and one orchestrator per signing actor.
Each actor signs through its own RemoteSigner, so executors (and the
orchestrators that own them) are per actor; the ledger reader, the
encryption/storage clients and the signer HTTP session are shared.

An actor's orchestrator exists only while one of its actions holds a lease
or one of its submission pipelines is still running.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

import httpx

from gigescrow.config import Settings, get_settings
from gigescrow.engines.encryption.gateway import GatewayEncryptionService
from gigescrow.engines.encryption.service import EncryptionService
from gigescrow.engines.storage.blob_store import BlobStore, HttpBlobStore
from gigescrow.kernel.identity.address import normalize_address
from gigescrow.kernel.ledger.client import LedgerClient, LedgerReader
from gigescrow.kernel.ledger.executor import (
    LedgerTransactionExecutor,
    RemoteSigner,
    TransactionExecutor,
)
from gigescrow.kernel.ledger.rpc import JsonRpcClient
from gigescrow.logging_config import get_logger
from gigescrow.orchestration.deliverable_orchestrator import DeliverableOrchestrator
from gigescrow.orchestration.job_actions import JobActions
from gigescrow.orchestration.retrieval import DeliverableRetrieval

logger = get_logger(__name__)

ExecutorFactory = Callable[[str], TransactionExecutor]


class ServiceRegistry:
    def __init__(
        self,
        *,
        ledger: LedgerReader,
        encryption: EncryptionService,
        blob_store: BlobStore,
        executor_factory: ExecutorFactory,
        package_id: str,
        clock_id: str = "0x6",
        max_file_bytes: int = 100 * 1024 * 1024,
    ):
        self.ledger = ledger
        self.encryption = encryption
        self.blob_store = blob_store
        self.executor_factory = executor_factory
        self.package_id = package_id
        self.clock_id = clock_id
        self.max_file_bytes = max_file_bytes
        self._orchestrators: Dict[str, DeliverableOrchestrator] = {}
        self._leases: Dict[str, int] = {}
        self._closers = []

    @property
    def active_actors(self) -> int:
        return len(self._orchestrators)

    @asynccontextmanager
    async def lease(self, actor: str) -> AsyncIterator[DeliverableOrchestrator]:
        """
        Hold the actor's orchestrator for one action.

        Concurrent actions by the same actor share one orchestrator, so its
        per-milestone in-progress guard holds across requests.
        """
        key = normalize_address(actor)
        orchestrator = self._orchestrators.get(key)
        if orchestrator is None:
            orchestrator = DeliverableOrchestrator(
                self.encryption,
                self.blob_store,
                self.executor_factory(key),
                package_id=self.package_id,
                clock_id=self.clock_id,
                max_file_bytes=self.max_file_bytes,
                on_idle=lambda: self._release(key),
            )
            self._orchestrators[key] = orchestrator
        self._leases[key] = self._leases.get(key, 0) + 1
        try:
            yield orchestrator
        finally:
            self._leases[key] -= 1
            if not self._leases[key]:
                del self._leases[key]
            self._release(key)

    def _release(self, key: str) -> None:
        # A cancelled caller leaves its pipeline running; on_idle retries then
        orchestrator = self._orchestrators.get(key)
        if orchestrator is None or key in self._leases or not orchestrator.is_idle:
            return
        del self._orchestrators[key]
        logger.debug("Released actor orchestrator", extra={"actor": key})

    def job_actions_for(self, actor: str) -> JobActions:
        return JobActions(
            self.ledger,
            lambda: self.lease(actor),
            package_id=self.package_id,
            clock_id=self.clock_id,
        )

    def retrieval(self) -> DeliverableRetrieval:
        return DeliverableRetrieval(self.encryption, self.blob_store)

    def on_close(self, closer: Callable) -> None:
        self._closers.append(closer)

    async def aclose(self) -> None:
        for orchestrator in list(self._orchestrators.values()):
            await orchestrator.drain()
        for closer in reversed(self._closers):
            await closer()
        self._closers.clear()


def build_services(settings: Settings) -> ServiceRegistry:
    """Build the production wiring from settings."""
    rpc = JsonRpcClient(settings.ledger_rpc_url, timeout=settings.http_timeout_seconds)
    encryption = GatewayEncryptionService(
        settings.encryption_gateway_url,
        threshold=settings.encryption_threshold,
        timeout=settings.http_timeout_seconds,
    )
    blob_store = HttpBlobStore(
        settings.blob_publisher_url,
        settings.blob_aggregator_url,
        storage_package_id=settings.blob_storage_package_id,
        epochs=settings.blob_storage_epochs,
        deletable=settings.blob_deletable,
    )
    # One connection pool for every actor's signer
    signer_http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    def executor_factory(actor: str) -> TransactionExecutor:
        return LedgerTransactionExecutor(
            RemoteSigner(settings.signer_url, actor, client=signer_http),
            rpc,
            confirmation_timeout=settings.confirmation_timeout_seconds,
            poll_interval=settings.confirmation_poll_interval_seconds,
        )

    registry = ServiceRegistry(
        ledger=LedgerClient(rpc, settings.escrow_package_id),
        encryption=encryption,
        blob_store=blob_store,
        executor_factory=executor_factory,
        package_id=settings.escrow_package_id,
        clock_id=settings.clock_object_id,
        max_file_bytes=settings.max_deliverable_bytes,
    )
    registry.on_close(rpc.aclose)
    registry.on_close(encryption.aclose)
    registry.on_close(blob_store.aclose)
    registry.on_close(signer_http.aclose)
    return registry


_services: Optional[ServiceRegistry] = None


async def init_services() -> ServiceRegistry:
    global _services
    if _services is None:
        settings = get_settings()
        _services = build_services(settings)
        logger.info(
            "Services initialized",
            extra={"network": settings.network, "ledger_rpc_url": settings.ledger_rpc_url},
        )
    return _services


async def close_services() -> None:
    global _services
    if _services is not None:
        await _services.aclose()
        _services = None


def get_services() -> ServiceRegistry:
    """Dependency returning the process-wide registry."""
    if _services is None:
        raise RuntimeError("Services are not initialized")
    return _services
