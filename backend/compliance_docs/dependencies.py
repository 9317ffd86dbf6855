from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from compliance_docs.config import settings
from compliance_docs.database import get_db
from compliance_docs.services.blob_store import LocalBlobStore
from compliance_docs.services.document_repository import DocumentRepository
from compliance_docs.services.document_service import DocumentService
from compliance_docs.services.entity_validator import EntityValidator
from compliance_docs.services.query_service import QueryService
from compliance_docs.services.queue_publisher import MessageBroker, ProcessingQueuePublisher
from compliance_docs.services.upload_service import UploadOrchestrator
from compliance_docs.services.verification_service import VerificationStateMachine


async def require_user_id(x_user_id: str = Header(...)) -> str:
    # Authentication happens upstream; the gateway forwards the caller's id.
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing caller identity")
    return x_user_id.strip()


def get_broker(request: Request) -> MessageBroker:
    return request.app.state.broker


def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore(settings.documents_dir)


def get_repository(request: Request, db: Session = Depends(get_db)) -> DocumentRepository:
    cache = getattr(request.app.state, "cache", None)
    return DocumentRepository(db, on_commit=(lambda keys: cache.invalidate(*keys)) if cache else None)


def get_publisher(broker: MessageBroker = Depends(get_broker)) -> ProcessingQueuePublisher:
    return ProcessingQueuePublisher(broker)


def get_validator(db: Session = Depends(get_db)) -> EntityValidator:
    return EntityValidator(db)


def get_upload_orchestrator(
    validator: EntityValidator = Depends(get_validator),
    blobs: LocalBlobStore = Depends(get_blob_store),
    repository: DocumentRepository = Depends(get_repository),
    publisher: ProcessingQueuePublisher = Depends(get_publisher),
) -> UploadOrchestrator:
    return UploadOrchestrator(validator, blobs, repository, publisher)


def get_verification(
    repository: DocumentRepository = Depends(get_repository),
    publisher: ProcessingQueuePublisher = Depends(get_publisher),
    validator: EntityValidator = Depends(get_validator),
) -> VerificationStateMachine:
    return VerificationStateMachine(repository, publisher, validator)


def get_document_service(
    repository: DocumentRepository = Depends(get_repository),
    blobs: LocalBlobStore = Depends(get_blob_store),
    publisher: ProcessingQueuePublisher = Depends(get_publisher),
) -> DocumentService:
    return DocumentService(repository, blobs, publisher)


def get_query_service(repository: DocumentRepository = Depends(get_repository)) -> QueryService:
    return QueryService(repository)
