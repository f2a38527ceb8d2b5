"""
Encryption Engine - access lists and threshold encryption via the gateway.
"""

from gigescrow.engines.encryption.gateway import GatewayEncryptionService
from gigescrow.engines.encryption.service import (
    AccessListHandle,
    EncryptedPayload,
    EncryptionFailureReason,
    EncryptionService,
    EncryptionServiceError,
    build_identity,
)

__all__ = [
    "AccessListHandle",
    "EncryptedPayload",
    "EncryptionFailureReason",
    "EncryptionService",
    "EncryptionServiceError",
    "GatewayEncryptionService",
    "build_identity",
]
