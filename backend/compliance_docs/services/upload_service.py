import logging
import uuid
from dataclasses import dataclass
from typing import Any

from compliance_docs.config import settings
from compliance_docs.errors import BadRequestError, PayloadTooLargeError
from compliance_docs.models.document import DocumentRecord
from compliance_docs.schemas.document import DOCUMENT_TYPES, UploadAck, UploadConfig
from compliance_docs.schemas.entity import EntityRef
from compliance_docs.schemas.metadata import merge_processing_metadata, validate_metadata
from compliance_docs.services.batch import BatchResult, run_batch
from compliance_docs.services.blob_store import LocalBlobStore
from compliance_docs.services.document_repository import DocumentRepository
from compliance_docs.services.entity_validator import EntityValidator
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher, resolve_priority
from compliance_docs.utils.clock import utc_now
from compliance_docs.utils.filesystem import file_extension, guess_mime_type

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    filename: str | None
    content: bytes


def build_file_name(document_type: str, ref: EntityRef, original_filename: str | None) -> str:
    """``<documentType>_<entityType>_<entityId>_<uuid4><ext>``; unique without coordination."""
    return f"{document_type}_{ref.kind}_{ref.id}_{uuid.uuid4()}{file_extension(original_filename)}"


def check_document_type(document_type: str) -> str:
    if document_type not in DOCUMENT_TYPES:
        raise BadRequestError(
            f"Invalid document type '{document_type}'. Must be one of: {', '.join(DOCUMENT_TYPES)}"
        )
    return document_type


class UploadOrchestrator:
    """Blob write, row insert, queue publish; in that order.

    The three steps are not one transaction. If the insert fails the blob
    is removed again. If the publish fails the row is kept, its processing
    status is set to ``processing_failed`` and the error is raised, so the
    caller sees the failure while the upload itself stays on record.
    """

    def __init__(
        self,
        validator: EntityValidator,
        blobs: LocalBlobStore,
        repository: DocumentRepository,
        publisher: ProcessingQueuePublisher,
    ):
        self.validator = validator
        self.blobs = blobs
        self.repository = repository
        self.publisher = publisher

    async def upload(
        self,
        ref: EntityRef,
        document_type: str,
        file: IncomingFile,
        uploaded_by: str,
        metadata: dict[str, Any] | None = None,
        priority: int | str | None = None,
        validate_entity: bool = True,
    ) -> UploadAck:
        check_document_type(document_type)
        if validate_entity:
            self.validator.ensure_exists(ref)

        if not file.content:
            raise BadRequestError("Empty file")
        if len(file.content) > settings.max_upload_bytes:
            raise PayloadTooLargeError(f"File too large (max {settings.max_upload_bytes} bytes)")

        clean_metadata = validate_metadata(document_type, metadata)
        resolved_priority = resolve_priority(priority)
        file_name = build_file_name(document_type, ref, file.filename)
        file_path = self.blobs.write(file_name, file.content)

        now = utc_now()
        record = DocumentRecord(
            id=str(uuid.uuid4()),
            entity_type=ref.kind,
            entity_id=ref.id,
            document_type=document_type,
            file_name=file_name,
            file_path=file_path,
            file_size=len(file.content),
            mime_type=guess_mime_type(file_name),
            verification_status="pending",
            metadata_=clean_metadata,
            processing_metadata=merge_processing_metadata({}, {"status": "uploaded", "last_updated": now}),
            is_active=True,
            uploaded_by=uploaded_by,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repository.add(record)
        except Exception:
            logger.error("Insert failed for %s; removing orphaned blob", file_name)
            self.blobs.delete(file_path)
            raise

        try:
            queue_id = await self.publisher.enqueue(record.id, resolved_priority)
        except BadRequestError:
            record.processing_metadata = merge_processing_metadata(
                record.processing_metadata,
                {"status": "processing_failed", "last_updated": utc_now()},
            )
            self.repository.save(record)
            raise

        record.processing_metadata = merge_processing_metadata(
            record.processing_metadata,
            {"status": "queued", "queue_id": queue_id, "last_updated": utc_now()},
        )
        self.repository.save(record)

        logger.info("Uploaded %s for %s %s as %s", document_type, ref.kind, ref.id, record.id)
        return UploadAck(
            id=record.id,
            file_name=file_name,
            file_path=file_path,
            file_size=len(file.content),
            status="success",
            queue_id=queue_id,
            created_at=record.created_at,
        )

    async def upload_multiple(
        self,
        ref: EntityRef,
        files: list[IncomingFile],
        configs: list[UploadConfig],
        uploaded_by: str,
    ) -> BatchResult[UploadAck]:
        # A missing entity fails the whole call; everything after is per file.
        self.validator.ensure_exists(ref)

        async def upload_one(position: int) -> UploadAck:
            if position >= len(configs):
                raise BadRequestError("No document configuration supplied for this file")
            config = configs[position]
            return await self.upload(
                ref,
                config.document_type,
                files[position],
                uploaded_by,
                metadata=config.metadata,
                priority=config.priority,
                validate_entity=False,
            )

        return await run_batch(range(len(files)), upload_one, on_failure=self.repository.discard)
