"""
Service configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Gig Escrow Deliverable Service"
    version: str = "1.0.0"
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Ledger
    network: str = "testnet"
    ledger_rpc_url: str = "https://fullnode.testnet.sui.io:443"
    escrow_package_id: str = "0x0"
    clock_object_id: str = "0x6"
    signer_url: str = "http://localhost:9100"

    # Confirmation polling (bounded wait, never retried by the orchestrator)
    confirmation_timeout_seconds: float = 60.0
    confirmation_poll_interval_seconds: float = 1.0

    # Blob store
    blob_publisher_url: str = "https://upload-relay.testnet.walrus.space"
    blob_aggregator_url: str = "https://aggregator.walrus-testnet.walrus.space"
    blob_storage_package_id: str = "0x0"
    blob_storage_epochs: int = 10  # ~30 days on testnet
    blob_deletable: bool = False

    # Encryption / access-control gateway
    encryption_gateway_url: str = "http://localhost:9200"
    encryption_threshold: int = 1

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    # Validation
    max_deliverable_bytes: int = 100 * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
