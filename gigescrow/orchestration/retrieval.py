"""
Deliverable retrieval for the job's client.

Download only: reads the stored ciphertext and asks the encryption service to
decrypt it for the client. The key servers enforce access-list membership,
which the escrow contract grants on milestone approval.
"""

from gigescrow.engines.encryption.service import EncryptionService, EncryptionServiceError
from gigescrow.engines.storage.blob_store import BlobStore, BlobStoreError
from gigescrow.kernel.identity.address import same_address
from gigescrow.kernel.models.deliverable import DeliverableFile
from gigescrow.kernel.models.job import Job, MilestoneStatus
from gigescrow.logging_config import get_logger
from gigescrow.orchestration.errors import (
    EncryptionStageError,
    StorageStageError,
    SubmissionValidationError,
)

logger = get_logger(__name__)

_STAGE = "retrieving"


class DeliverableRetrieval:
    def __init__(self, encryption: EncryptionService, blob_store: BlobStore):
        self.encryption = encryption
        self.blob_store = blob_store

    async def fetch(self, job: Job, milestone_id: int, actor: str) -> DeliverableFile:
        """
        Download and decrypt an approved milestone's deliverable.

        Raises:
            SubmissionValidationError: Not the client, unknown or unapproved milestone
            StorageStageError: The blob could not be read
            EncryptionStageError: Decryption was refused or failed
        """
        if not same_address(job.client, actor):
            raise SubmissionValidationError("Only the job's client can download deliverables", stage=_STAGE)
        milestone = job.milestone(milestone_id)
        if milestone is None:
            raise SubmissionValidationError(f"Job {job.id} has no milestone {milestone_id}", stage=_STAGE)
        if milestone.status != MilestoneStatus.APPROVED:
            raise SubmissionValidationError(
                f"Milestone {milestone_id} is {milestone.status.value}; deliverables unlock on approval",
                stage=_STAGE,
            )
        ref = milestone.deliverable
        if ref is None or not ref.access_list_id or not ref.nonce:
            raise SubmissionValidationError(
                f"Milestone {milestone_id} has no encrypted deliverable", stage=_STAGE
            )

        try:
            ciphertext = await self.blob_store.read(ref.content_id)
        except BlobStoreError as exc:
            raise StorageStageError(f"Could not read deliverable: {exc}", stage=_STAGE, cause=exc) from exc
        try:
            plaintext = await self.encryption.decrypt(ciphertext, ref.access_list_id, ref.nonce, actor)
        except EncryptionServiceError as exc:
            raise EncryptionStageError(
                f"Could not decrypt deliverable ({exc.reason.value}): {exc}", stage=_STAGE, cause=exc
            ) from exc

        logger.info(
            "Deliverable retrieved",
            extra={"job_id": job.id, "milestone_id": milestone_id, "content_id": ref.content_id},
        )
        return DeliverableFile(
            filename=ref.original_filename or f"milestone-{milestone_id}",
            content=plaintext,
        )
