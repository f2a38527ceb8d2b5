"""
Transaction payload builders for the escrow and storage contracts.

Payloads are plain data: a move-call target plus typed arguments. Signing
and execution happen in the executor; nothing here touches the network.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ArgumentKind(str, Enum):
    OBJECT = "object"
    PURE = "pure"


class TransactionKind(str, Enum):
    """What a payload does. Used for logging and attempt bookkeeping."""

    REGISTER_BLOB = "register_blob"
    START_JOB = "start_job"
    SUBMIT_MILESTONE = "submit_milestone"
    CLAIM_JOB_COMPLETION = "claim_job_completion"


class TransactionArgument(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ArgumentKind
    value: Any
    type_tag: Optional[str] = None  # u64, bool, address, id, vector<u8>

    @classmethod
    def object(cls, object_id: str) -> "TransactionArgument":
        return cls(kind=ArgumentKind.OBJECT, value=object_id)

    @classmethod
    def u64(cls, value: int) -> "TransactionArgument":
        if value < 0:
            raise ValueError("u64 must be non-negative")
        return cls(kind=ArgumentKind.PURE, value=str(value), type_tag="u64")

    @classmethod
    def boolean(cls, value: bool) -> "TransactionArgument":
        return cls(kind=ArgumentKind.PURE, value=value, type_tag="bool")

    @classmethod
    def address(cls, value: str) -> "TransactionArgument":
        return cls(kind=ArgumentKind.PURE, value=value, type_tag="address")

    @classmethod
    def id(cls, value: str) -> "TransactionArgument":
        return cls(kind=ArgumentKind.PURE, value=value, type_tag="id")

    @classmethod
    def utf8(cls, value: str) -> "TransactionArgument":
        return cls(
            kind=ArgumentKind.PURE,
            value=list(value.encode("utf-8")),
            type_tag="vector<u8>",
        )

    def to_wire(self) -> Dict[str, Any]:
        if self.kind == ArgumentKind.OBJECT:
            return {"object": self.value}
        return {"pure": {"type": self.type_tag, "value": self.value}}


class TransactionPayload(BaseModel):
    """A single move call, ready to be signed."""

    model_config = ConfigDict(frozen=True)

    kind: TransactionKind
    target: str
    arguments: List[TransactionArgument] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "arguments": [a.to_wire() for a in self.arguments],
        }


def _target(package_id: str, module: str, function: str) -> str:
    return f"{package_id}::{module}::{function}"


def register_blob(
    storage_package_id: str,
    *,
    content_id: str,
    size: int,
    epochs: int,
    deletable: bool,
    owner: str,
) -> TransactionPayload:
    """Reserve and pay for storage of an encoded blob."""
    return TransactionPayload(
        kind=TransactionKind.REGISTER_BLOB,
        target=_target(storage_package_id, "system", "register_blob"),
        arguments=[
            TransactionArgument.utf8(content_id),
            TransactionArgument.u64(size),
            TransactionArgument.u64(epochs),
            TransactionArgument.boolean(deletable),
            TransactionArgument.address(owner),
        ],
    )


def start_job(
    package_id: str,
    *,
    job_id: str,
    profile_id: str,
    clock_id: str = "0x6",
) -> TransactionPayload:
    """ASSIGNED -> IN_PROGRESS. The worker's profile is updated in the same call."""
    return TransactionPayload(
        kind=TransactionKind.START_JOB,
        target=_target(package_id, "job_escrow", "start_job"),
        arguments=[
            TransactionArgument.object(job_id),
            TransactionArgument.object(profile_id),
            TransactionArgument.object(clock_id),
        ],
    )


def submit_milestone(
    package_id: str,
    *,
    job_id: str,
    milestone_id: int,
    content_id: str,
    preview_reference: str,
    capability_id: str,
    access_list_id: str,
    nonce: str,
    original_filename: str,
    clock_id: str = "0x6",
) -> TransactionPayload:
    """
    Record a deliverable on a milestone.

    The capability object is moved into a deliverable escrow held by the
    contract, which later uses it to add the client to the access list on
    approval.
    """
    return TransactionPayload(
        kind=TransactionKind.SUBMIT_MILESTONE,
        target=_target(package_id, "job_escrow", "submit_milestone"),
        arguments=[
            TransactionArgument.object(job_id),
            TransactionArgument.u64(milestone_id),
            TransactionArgument.utf8(content_id),
            TransactionArgument.utf8(preview_reference),
            TransactionArgument.object(capability_id),
            TransactionArgument.id(access_list_id),
            TransactionArgument.utf8(nonce),
            TransactionArgument.utf8(original_filename),
            TransactionArgument.object(clock_id),
        ],
    )


def claim_job_completion(
    package_id: str,
    *,
    job_id: str,
    profile_id: str,
    clock_id: str = "0x6",
) -> TransactionPayload:
    """Clear the pending-completion flag and credit the worker's profile."""
    return TransactionPayload(
        kind=TransactionKind.CLAIM_JOB_COMPLETION,
        target=_target(package_id, "job_escrow", "claim_job_completion"),
        arguments=[
            TransactionArgument.object(job_id),
            TransactionArgument.object(profile_id),
            TransactionArgument.object(clock_id),
        ],
    )
