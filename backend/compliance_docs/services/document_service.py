import logging
from dataclasses import dataclass
from typing import Any

from compliance_docs.errors import NotFoundError
from compliance_docs.models.document import DocumentRecord
from compliance_docs.schemas.document import (
    DeletionResult,
    DocumentResponse,
    DocumentUpdate,
    ProcessingAck,
    ProcessingStatusUpdate,
)
from compliance_docs.schemas.metadata import merge_metadata, merge_processing_metadata
from compliance_docs.services.batch import BatchResult, run_batch
from compliance_docs.services.blob_store import LocalBlobStore
from compliance_docs.services.document_repository import DocumentRepository
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher
from compliance_docs.services.upload_service import check_document_type
from compliance_docs.utils.clock import utc_now
from compliance_docs.utils.filesystem import guess_mime_type

logger = logging.getLogger(__name__)

ESTIMATED_PROCESSING_SECONDS = 30


def document_to_response(doc: DocumentRecord) -> DocumentResponse:
    processing = doc.processing_metadata or {}
    return DocumentResponse(
        id=doc.id,
        entity_type=doc.entity_type,
        entity_id=doc.entity_id,
        document_type=doc.document_type,
        file_name=doc.file_name,
        file_path=doc.file_path,
        file_size=doc.file_size or 0,
        mime_type=doc.mime_type,
        verification_status=doc.verification_status,
        verified_by=doc.verified_by,
        verified_at=doc.verified_at,
        verification_comments=doc.verification_comments,
        rejection_reason=doc.rejection_reason,
        processing_status=processing.get("status"),
        processing_progress=processing.get("progress"),
        processing_result=processing.get("result"),
        metadata=doc.metadata_ or {},
        processing_metadata=processing,
        is_active=doc.is_active,
        uploaded_by=doc.uploaded_by,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


@dataclass
class DownloadedFile:
    file_name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentService:
    """Single-document operations other than upload and verification."""

    def __init__(
        self,
        repository: DocumentRepository,
        blobs: LocalBlobStore,
        publisher: ProcessingQueuePublisher,
    ):
        self.repository = repository
        self.blobs = blobs
        self.publisher = publisher

    def _require(self, document_id: str) -> DocumentRecord:
        record = self.repository.get(document_id)
        if record is None:
            raise NotFoundError("Document not found")
        return record

    def get(self, document_id: str) -> DocumentResponse:
        return document_to_response(self._require(document_id))

    def download(self, document_id: str) -> DownloadedFile:
        record = self._require(document_id)
        if not self.blobs.exists(record.file_path):
            raise NotFoundError("Document file not found")
        return DownloadedFile(
            file_name=record.file_name,
            mime_type=record.mime_type or guess_mime_type(record.file_name),
            content=self.blobs.read(record.file_path),
        )

    def update(self, document_id: str, patch: DocumentUpdate) -> DocumentResponse:
        record = self._require(document_id)
        if patch.document_type:
            record.document_type = check_document_type(patch.document_type)
        if patch.metadata:
            record.metadata_ = merge_metadata(record.document_type, record.metadata_, patch.metadata)
        if patch.is_active is not None:
            record.is_active = patch.is_active
        record.updated_at = utc_now()
        self.repository.save(record)
        return document_to_response(record)

    # --- Processing ---

    async def process(
        self,
        document_id: str,
        options: dict[str, Any] | None = None,
        priority: int | str | None = None,
    ) -> ProcessingAck:
        record = self._require(document_id)
        queue_id = await self.publisher.enqueue(record.id, priority, options)
        now = utc_now()
        record.processing_metadata = merge_processing_metadata(
            record.processing_metadata,
            {"status": "queued", "queue_id": queue_id, "last_updated": now},
        )
        self.repository.save(record)
        return ProcessingAck(
            document_id=record.id,
            status="queued",
            queue_id=queue_id,
            estimated_time=ESTIMATED_PROCESSING_SECONDS,
            timestamp=now,
        )

    async def batch_process(
        self, document_ids: list[str], options: dict[str, Any] | None = None
    ) -> BatchResult[ProcessingAck]:
        return await run_batch(
            document_ids,
            lambda document_id: self.process(document_id, options),
            label=lambda _, document_id: document_id,
            on_failure=self.repository.discard,
        )

    def update_processing_status(self, update: ProcessingStatusUpdate) -> DocumentResponse:
        """Worker callback; touches ``processing_metadata`` and nothing else."""
        record = self._require(update.document_id)
        patch: dict[str, Any] = {
            "status": update.status,
            "progress": update.progress,
            "result": update.result,
            **(update.metadata or {}),
            "last_updated": utc_now(),
        }
        record.processing_metadata = merge_processing_metadata(record.processing_metadata, patch)
        self.repository.save(record)
        return document_to_response(record)

    # --- Deletion ---

    def delete(self, document_id: str, reason: str | None = None, permanent: bool = False) -> DeletionResult:
        record = self._require(document_id)
        now = utc_now()
        if permanent:
            # Row first: a failed delete must not leave a row without its blob.
            file_path = record.file_path
            self.repository.remove(record)
            self.blobs.delete(file_path)
            logger.info("Document %s permanently deleted", document_id)
        else:
            record.is_active = False
            record.metadata_ = {
                **(record.metadata_ or {}),
                "deleted_at": now,
                "deletion_reason": reason or "",
            }
            record.updated_at = now
            self.repository.save(record)
            logger.info("Document %s deactivated", document_id)
        return DeletionResult(id=document_id, status="success", permanent=permanent, deleted_at=now)

    async def batch_delete(
        self, document_ids: list[str], reason: str | None = None, permanent: bool = False
    ) -> tuple[BatchResult[DeletionResult], list[DeletionResult]]:
        """Returns the batch outcome and one result per input id, failures included."""
        outcome = await run_batch(
            document_ids,
            lambda document_id: self.delete(document_id, reason, permanent),
            label=lambda _, document_id: document_id,
            on_failure=self.repository.discard,
        )
        done = iter(outcome.succeeded)
        failed_positions = {position for position, _ in outcome.failed}
        results = []
        for position, document_id in enumerate(document_ids):
            if position in failed_positions:
                results.append(
                    DeletionResult(id=document_id, status="failed", permanent=permanent, deleted_at=utc_now())
                )
            else:
                results.append(next(done))
        return outcome, results
