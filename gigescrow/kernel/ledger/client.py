"""
Read side of the ledger: job and profile snapshots.

Every snapshot returned here is a fresh read. Callers re-fetch after each
confirmed transaction instead of patching an old snapshot.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from gigescrow.kernel.identity.address import normalize_address
from gigescrow.kernel.ledger.errors import LedgerQueryError, ObjectNotFoundError
from gigescrow.kernel.ledger.rpc import JsonRpcClient
from gigescrow.kernel.models.job import (
    DeliverableReference,
    Job,
    JobState,
    Milestone,
    Profile,
    ProfileType,
)
from gigescrow.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class LedgerReader(Protocol):
    async def fetch_job(self, job_id: str) -> Job:
        ...

    async def fetch_profile(self, identity: str) -> Optional[Profile]:
        ...


def bytes_field_to_str(value: Any) -> str:
    """Decode a vector<u8> field (list of ints) or pass a string through."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return bytes(value).decode("utf-8", errors="replace")


def _optional_bytes_field(value: Any) -> Optional[str]:
    if value in (None, [], ""):
        return None
    return bytes_field_to_str(value)


def _millis_to_datetime(value: Any) -> Optional[datetime]:
    if value in (None, "", "0", 0):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _option_u64(value: Any) -> Optional[int]:
    """Option<u64> arrives as null, a string/int, or {"vec": [...]}."""
    if value is None:
        return None
    if isinstance(value, dict):
        vec = value.get("vec") or []
        return int(vec[0]) if vec else None
    return int(value)


def _move_fields(obj: Dict[str, Any], object_id: str) -> Dict[str, Any]:
    data = obj.get("data") if obj else None
    if not data:
        raise ObjectNotFoundError(object_id)
    content = data.get("content") or {}
    if content.get("dataType") != "moveObject":
        raise ObjectNotFoundError(object_id)
    return content.get("fields") or {}


def parse_milestone(fields: Dict[str, Any]) -> Milestone:
    """Parse one milestone table entry into a snapshot."""
    blob_id = _optional_bytes_field(fields.get("submission_blob_id"))
    deliverable = None
    if blob_id:
        deliverable = DeliverableReference(
            content_id=blob_id,
            preview_reference=_optional_bytes_field(fields.get("preview_url")),
            access_list_id=fields.get("whitelist_id") or None,
            escrow_id=fields.get("deliverable_escrow_id") or None,
            nonce=_optional_bytes_field(fields.get("nonce")),
            original_filename=_optional_bytes_field(fields.get("original_file_name")),
        )
    completed = bool(fields.get("completed"))
    approved = bool(fields.get("approved"))
    return Milestone(
        id=int(fields["id"]),
        description=bytes_field_to_str(fields.get("description")),
        amount=int(fields.get("amount") or 0),
        status=Milestone.derive_status(completed, approved, deliverable is not None),
        deliverable=deliverable,
        submitted_at=_millis_to_datetime(fields.get("submitted_at")),
        approved_at=_millis_to_datetime(fields.get("approved_at")),
    )


def parse_job(job_id: str, fields: Dict[str, Any], milestones: List[Milestone]) -> Job:
    """Parse on-ledger job fields into a snapshot."""
    worker = fields.get("freelancer")
    if isinstance(worker, dict):
        vec = worker.get("vec") or []
        worker = vec[0] if vec else None
    deadline = _millis_to_datetime(fields.get("deadline")) or datetime.fromtimestamp(0, tz=timezone.utc)
    return Job(
        id=job_id,
        title=bytes_field_to_str(fields.get("title")),
        budget=int(fields.get("budget") or 0),
        deadline=deadline,
        client=fields["client"],
        worker=worker or None,
        state=JobState(int(fields["state"])),
        milestones=milestones,
        description_ref=bytes_field_to_str(fields.get("description_blob_id")),
        created_at=_millis_to_datetime(fields.get("created_at")),
        pending_completion=_option_u64(fields.get("pending_freelancer_completion")),
    )


class LedgerClient:
    """
    Service for reading escrow objects from the full node.

    Usage:
        ledger = LedgerClient(rpc, package_id=settings.escrow_package_id)
        job = await ledger.fetch_job(job_id)
    """

    def __init__(self, rpc: JsonRpcClient, package_id: str):
        self.rpc = rpc
        self.package_id = package_id

    async def fetch_job(self, job_id: str) -> Job:
        """
        Fetch a job snapshot with all of its milestones.

        Raises:
            ObjectNotFoundError: If the job does not exist
            LedgerQueryError: On read failures
        """
        obj = await self.rpc.call(
            "sui_getObject",
            [job_id, {"showContent": True, "showOwner": True}],
        )
        fields = _move_fields(obj, job_id)

        milestone_count = int(fields.get("milestone_count") or 0)
        table_id = (
            ((fields.get("milestones") or {}).get("fields") or {}).get("id") or {}
        ).get("id")
        milestones: List[Milestone] = []
        if table_id and milestone_count > 0:
            milestones = await self._fetch_milestones(table_id, milestone_count)
        if len(milestones) != milestone_count:
            raise LedgerQueryError(
                f"Job {job_id}: expected {milestone_count} milestones, read {len(milestones)}"
            )

        job = parse_job(job_id, fields, milestones)
        logger.debug(
            "Fetched job",
            extra={"job_id": job_id, "state": job.state.name, "milestones": milestone_count},
        )
        return job

    async def _fetch_milestones(self, table_id: str, count: int) -> List[Milestone]:
        milestones: List[Milestone] = []
        for i in range(count):
            entry = await self.rpc.call(
                "suix_getDynamicFieldObject",
                [table_id, {"type": "u64", "value": str(i)}],
            )
            wrapper = _move_fields(entry, f"{table_id}[{i}]")
            # Table entries wrap the value: fields.value.fields
            value = (wrapper.get("value") or {}).get("fields")
            if value is None:
                raise LedgerQueryError(f"Milestone {i} in table {table_id} has no value")
            milestones.append(parse_milestone(value))
        return milestones

    async def fetch_profile(self, identity: str) -> Optional[Profile]:
        """Return the identity's registered profile, or None if it has none."""
        owner = normalize_address(identity)
        page = await self.rpc.call(
            "suix_getOwnedObjects",
            [
                owner,
                {
                    "filter": {"StructType": f"{self.package_id}::profile_nft::Profile"},
                    "options": {"showContent": True, "showType": True},
                },
                None,
                1,
            ],
        )
        for item in (page or {}).get("data", []):
            data = item.get("data") or {}
            content = data.get("content") or {}
            if content.get("dataType") != "moveObject":
                continue
            fields = content.get("fields") or {}
            return Profile(
                id=data["objectId"],
                owner=fields.get("owner", owner),
                profile_type=ProfileType(int(fields.get("profile_type", 0))),
                username=fields.get("username", ""),
                completed_jobs=int(fields.get("completed_jobs") or 0),
                total_jobs=int(fields.get("total_jobs") or 0),
            )
        return None

    async def get_transaction(self, digest: str) -> Optional[Dict[str, Any]]:
        """Look up a transaction by digest; None when the node does not know it."""
        try:
            return await self.rpc.call(
                "sui_getTransactionBlock",
                [digest, {"showEffects": True, "showEvents": True}],
            )
        except LedgerQueryError:
            return None
