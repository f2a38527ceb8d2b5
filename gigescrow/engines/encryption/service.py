"""
Encryption & access-control boundary.

An access list is a ledger-tracked set of identities allowed to decrypt a
payload. Its capability handle grants management rights (add/revoke members)
and is owned by the submission until the milestone transaction moves it into
the contract's custody.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Protocol, runtime_checkable

from gigescrow.kernel.identity.address import (
    InvalidAddressError,
    address_to_bytes,
    normalize_address,
)


class EncryptionFailureReason(str, Enum):
    AUDIENCE_RESOLUTION = "audience-resolution"
    KEY_DERIVATION = "key-derivation"
    ACCESS_DENIED = "access-denied"
    GATEWAY = "gateway"


class EncryptionServiceError(Exception):
    """Raised by encryption adapters. No ledger or storage state is touched."""

    def __init__(self, message: str, reason: EncryptionFailureReason = EncryptionFailureReason.GATEWAY):
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class AccessListHandle:
    list_id: str
    capability_id: str


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: bytes = field(repr=False)
    nonce: str


@runtime_checkable
class EncryptionService(Protocol):
    async def create_access_list(self, audience: List[str]) -> AccessListHandle:
        ...

    async def encrypt(self, data: bytes, list_id: str) -> EncryptedPayload:
        ...

    async def decrypt(self, ciphertext: bytes, list_id: str, nonce: str, actor: str) -> bytes:
        ...


def new_nonce() -> str:
    """Single-use nonce bound to one encryption operation."""
    return str(uuid.uuid4())


def build_identity(list_id: str, nonce: str) -> str:
    """
    Key identity for an encryption: list id bytes followed by the UTF-8 nonce.

    The key servers only release the derived key to members of the list, so
    the list id must prefix the identity.
    """
    return (address_to_bytes(list_id) + nonce.encode("utf-8")).hex()


def resolve_audience(audience: List[str], *, required: int = 1) -> List[str]:
    """Validate and de-duplicate an audience, keeping order."""
    resolved: List[str] = []
    for member in audience:
        try:
            address = normalize_address(member)
        except InvalidAddressError as exc:
            raise EncryptionServiceError(
                f"Cannot resolve audience member {member!r}",
                reason=EncryptionFailureReason.AUDIENCE_RESOLUTION,
            ) from exc
        if address not in resolved:
            resolved.append(address)
    if len(resolved) < required:
        raise EncryptionServiceError(
            "Audience is empty",
            reason=EncryptionFailureReason.AUDIENCE_RESOLUTION,
        )
    return resolved
