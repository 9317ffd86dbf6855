import logging
from dataclasses import dataclass
from typing import Any

from compliance_docs.config import settings
from compliance_docs.errors import BadRequestError, InvalidTransitionError, NotFoundError
from compliance_docs.schemas.document import UserSummary, VERIFICATION_STATUSES, VerificationResult
from compliance_docs.schemas.metadata import merge_metadata
from compliance_docs.services.batch import BatchResult, run_batch
from compliance_docs.services.document_repository import DocumentRepository
from compliance_docs.services.entity_validator import EntityValidator
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher
from compliance_docs.utils.clock import utc_now

logger = logging.getLogger(__name__)

DECIDED = ("approved", "rejected")


@dataclass
class VerificationRequest:
    document_id: str
    verification_status: str
    comments: str | None = None
    rejection_reason: str | None = None
    metadata: dict[str, Any] | None = None


def allowed_targets(current: str, allow_redecision: bool) -> tuple[str, ...]:
    """Statuses a document in ``current`` may move to.

    Nothing ever moves back to ``pending``. A decided document may only be
    decided again when re-decision is enabled.
    """
    if current == "pending" or allow_redecision:
        return DECIDED
    return ()


class VerificationStateMachine:
    def __init__(
        self,
        repository: DocumentRepository,
        publisher: ProcessingQueuePublisher,
        validator: EntityValidator,
        allow_redecision: bool | None = None,
    ):
        self.repository = repository
        self.publisher = publisher
        self.validator = validator
        self.allow_redecision = (
            settings.allow_redecision if allow_redecision is None else allow_redecision
        )

    async def verify(self, request: VerificationRequest, verifier_id: str) -> VerificationResult:
        target = request.verification_status
        if target not in VERIFICATION_STATUSES:
            raise BadRequestError(
                f"Invalid verification status '{target}'. Must be one of: {', '.join(VERIFICATION_STATUSES)}"
            )

        record = self.repository.get(request.document_id)
        if record is None:
            raise NotFoundError("Document not found")

        current = record.verification_status
        if target not in allowed_targets(current, self.allow_redecision):
            raise InvalidTransitionError(current, target)

        # Validate everything before the tracked record is touched.
        metadata = (
            merge_metadata(record.document_type, record.metadata_, request.metadata)
            if request.metadata
            else None
        )

        now = utc_now()
        record.verification_status = target
        record.verified_by = verifier_id
        record.verified_at = now
        if request.comments:
            record.verification_comments = request.comments
        # A rejection without a reason is accepted as-is; an approval clears
        # the reason left by an earlier rejection.
        if target == "approved":
            record.rejection_reason = None
        elif request.rejection_reason:
            record.rejection_reason = request.rejection_reason
        if metadata is not None:
            record.metadata_ = metadata
        record.updated_at = now
        self.repository.save(record)
        logger.info("Document %s moved %s -> %s by %s", record.id, current, target, verifier_id)

        # The decision is already committed; a publish failure is reported, not undone.
        await self.publisher.publish_verification_event(record.id, target)

        verifier = self.validator.get_user(verifier_id)
        return VerificationResult(
            document_id=record.id,
            verification_status=record.verification_status,
            comments=record.verification_comments,
            rejection_reason=record.rejection_reason,
            metadata=record.metadata_ or {},
            verified_at=record.verified_at,
            verified_by=record.verified_by,
            verified_by_user=(
                UserSummary(
                    id=verifier.id,
                    full_name=verifier.full_name,
                    email=verifier.email,
                    role=verifier.role,
                )
                if verifier
                else None
            ),
        )

    async def batch_verify(
        self, requests: list[VerificationRequest], verifier_id: str
    ) -> BatchResult[VerificationResult]:
        return await run_batch(
            requests,
            lambda request: self.verify(request, verifier_id),
            label=lambda _, request: request.document_id,
            on_failure=self.repository.discard,
        )
