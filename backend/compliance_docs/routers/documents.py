import json
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from compliance_docs.config import settings
from compliance_docs.dependencies import (
    get_document_service,
    get_publisher,
    get_query_service,
    get_upload_orchestrator,
    get_verification,
    require_user_id,
)
from compliance_docs.errors import BadRequestError, PayloadTooLargeError
from compliance_docs.schemas.document import (
    ApiResponse,
    BatchDeleteRequest,
    BatchDeleteResponse,
    BatchProcessRequest,
    BatchResponse,
    BatchVerifyRequest,
    DeletionResult,
    DocumentPage,
    DocumentQuery,
    DocumentResponse,
    DocumentStatistics,
    DocumentUpdate,
    ExportRequest,
    ProcessingAck,
    ProcessingStatusUpdate,
    ProcessRequest,
    QueueStatus,
    StatisticsQuery,
    UploadAck,
    UploadConfig,
    VerificationResult,
    VerifyRequest,
)
from compliance_docs.schemas.entity import entity_ref
from compliance_docs.services.batch import BatchResult
from compliance_docs.services.document_service import DocumentService
from compliance_docs.services.query_service import QueryService
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher
from compliance_docs.services.upload_service import IncomingFile, UploadOrchestrator
from compliance_docs.services.verification_service import (
    VerificationRequest,
    VerificationStateMachine,
)

router = APIRouter(
    prefix="/documents",
    tags=["documents"],
    dependencies=[Depends(require_user_id)],
)


def _parse_json_field(raw: str | None, field: str) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadRequestError(f'Invalid JSON format for "{field}" field') from exc


async def _read_upload(file: UploadFile) -> IncomingFile:
    # Read in chunks so an oversized upload is rejected without buffering all of it.
    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLargeError(f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)
    return IncomingFile(filename=file.filename, content=b"".join(chunks))


def _batch_envelope(result: BatchResult, message: str) -> ApiResponse[BatchResponse]:
    return ApiResponse(
        status="partial" if result.is_partial else "success",
        message=message if not result.is_partial else f"{message} with {result.failure_count} failure(s)",
        data=BatchResponse(**result.as_dict()),
    )


# --- Upload ---


@router.post("/upload", response_model=ApiResponse[UploadAck], status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    document_type: str = Form(...),
    entity_type: str = Form(...),
    entity_id: str = Form(...),
    priority: str | None = Form(None),
    metadata: str | None = Form(None),
    uploaded_by: str = Depends(require_user_id),
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator),
):
    ref = entity_ref(entity_type, entity_id)
    meta = _parse_json_field(metadata, "metadata")
    if meta is not None and not isinstance(meta, dict):
        raise BadRequestError('"metadata" must be a JSON object')
    incoming = await _read_upload(file)
    ack = await orchestrator.upload(ref, document_type, incoming, uploaded_by, metadata=meta, priority=priority)
    return ApiResponse(message="Document uploaded successfully", data=ack)


@router.post("/upload/multiple", response_model=ApiResponse[BatchResponse[UploadAck]], status_code=201)
async def upload_multiple_documents(
    files: list[UploadFile] = File(...),
    entity_type: str = Form(...),
    entity_id: str = Form(...),
    documents: str = Form(...),
    uploaded_by: str = Depends(require_user_id),
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator),
):
    ref = entity_ref(entity_type, entity_id)
    raw_configs = _parse_json_field(documents, "documents")
    if not isinstance(raw_configs, list):
        raise BadRequestError('"documents" must be a JSON array')
    try:
        configs = [UploadConfig.model_validate(c) for c in raw_configs]
    except ValueError as exc:
        raise BadRequestError(f'Invalid entry in "documents": {exc}') from exc
    incoming = [await _read_upload(f) for f in files]
    result = await orchestrator.upload_multiple(ref, incoming, configs, uploaded_by)
    return _batch_envelope(result, "Documents uploaded")


# --- Catalog ---


@router.get("", response_model=ApiResponse[DocumentPage])
async def list_documents(
    search: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    document_type: str | None = None,
    verification_status: str | None = None,
    verified_from: str | None = None,
    verified_to: str | None = None,
    uploaded_from: str | None = None,
    uploaded_to: str | None = None,
    verified_by: str | None = None,
    uploaded_by: str | None = None,
    include_inactive: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc", "ASC", "DESC"] = "desc",
    queries: QueryService = Depends(get_query_service),
):
    query = DocumentQuery(
        search=search,
        entity_type=entity_type,
        entity_id=entity_id,
        document_type=document_type,
        verification_status=verification_status,
        verified_from=verified_from,
        verified_to=verified_to,
        uploaded_from=uploaded_from,
        uploaded_to=uploaded_to,
        verified_by=verified_by,
        uploaded_by=uploaded_by,
        include_inactive=include_inactive,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ApiResponse(message="Documents fetched successfully", data=queries.list_documents(query))


@router.get("/statistics", response_model=ApiResponse[DocumentStatistics])
async def document_statistics(
    entity_type: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    include_inactive: bool = False,
    queries: QueryService = Depends(get_query_service),
):
    stats = queries.statistics(
        StatisticsQuery(
            entity_type=entity_type,
            from_date=from_date,
            to_date=to_date,
            include_inactive=include_inactive,
        )
    )
    return ApiResponse(message="Document statistics fetched successfully", data=stats)


@router.get("/queue/status", response_model=ApiResponse[list[QueueStatus]])
async def queue_status(publisher: ProcessingQueuePublisher = Depends(get_publisher)):
    statuses = await publisher.queue_status()
    return ApiResponse(
        message="Queue status fetched successfully",
        data=[QueueStatus(**s) for s in statuses],
    )


@router.post("/export")
async def export_documents(
    req: ExportRequest,
    queries: QueryService = Depends(get_query_service),
):
    filters = req.filters or DocumentQuery()
    if req.format == "csv":
        return Response(
            content=queries.export_csv(filters),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="documents_export.csv"'},
        )
    return ApiResponse(message="Documents exported successfully", data=queries.export_json(filters))


# --- Processing ---


@router.post("/process", response_model=ApiResponse[ProcessingAck])
async def process_document(
    req: ProcessRequest,
    documents: DocumentService = Depends(get_document_service),
):
    ack = await documents.process(req.document_id, req.processing_options, req.priority)
    return ApiResponse(message="Document queued for processing", data=ack)


@router.post("/process/batch", response_model=ApiResponse[BatchResponse[ProcessingAck]])
async def batch_process_documents(
    req: BatchProcessRequest,
    documents: DocumentService = Depends(get_document_service),
):
    result = await documents.batch_process(req.document_ids, req.processing_options)
    return _batch_envelope(result, "Documents queued for processing")


@router.patch("/process/status", response_model=ApiResponse[DocumentResponse])
async def update_processing_status(
    req: ProcessingStatusUpdate,
    documents: DocumentService = Depends(get_document_service),
):
    return ApiResponse(
        message="Processing status updated",
        data=documents.update_processing_status(req),
    )


# --- Verification ---


@router.post("/verify/batch", response_model=ApiResponse[BatchResponse[VerificationResult]])
async def batch_verify_documents(
    req: BatchVerifyRequest,
    verifier_id: str = Depends(require_user_id),
    verification: VerificationStateMachine = Depends(get_verification),
):
    requests = [VerificationRequest(**item.model_dump()) for item in req.verifications]
    result = await verification.batch_verify(requests, verifier_id)
    return _batch_envelope(result, "Documents verified")


@router.patch("/{document_id}/verify", response_model=ApiResponse[VerificationResult])
async def verify_document(
    document_id: str,
    req: VerifyRequest,
    verifier_id: str = Depends(require_user_id),
    verification: VerificationStateMachine = Depends(get_verification),
):
    result = await verification.verify(
        VerificationRequest(document_id=document_id, **req.model_dump()),
        verifier_id,
    )
    return ApiResponse(message="Document verification updated", data=result)


# --- Deletion ---


@router.delete("/batch", response_model=ApiResponse[BatchDeleteResponse])
async def batch_delete_documents(
    req: BatchDeleteRequest = Body(...),
    documents: DocumentService = Depends(get_document_service),
):
    outcome, results = await documents.batch_delete(req.document_ids, req.reason, req.permanent)
    return ApiResponse(
        status="partial" if outcome.is_partial else "success",
        message="Documents deleted",
        data=BatchDeleteResponse(**outcome.as_dict(), results=results),
    )


# --- Single document ---


@router.get("/{document_id}", response_model=ApiResponse[DocumentResponse])
async def get_document(document_id: str, documents: DocumentService = Depends(get_document_service)):
    return ApiResponse(message="Document fetched successfully", data=documents.get(document_id))


@router.get("/{document_id}/download")
async def download_document(document_id: str, documents: DocumentService = Depends(get_document_service)):
    downloaded = documents.download(document_id)
    return Response(
        content=downloaded.content,
        media_type=downloaded.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{downloaded.file_name}"'},
    )


@router.patch("/{document_id}", response_model=ApiResponse[DocumentResponse])
async def update_document(
    document_id: str,
    req: DocumentUpdate,
    documents: DocumentService = Depends(get_document_service),
):
    return ApiResponse(message="Document updated successfully", data=documents.update(document_id, req))


@router.delete("/{document_id}", response_model=ApiResponse[DeletionResult])
async def delete_document(
    document_id: str,
    permanent: bool = False,
    reason: str | None = Query(None, max_length=500),
    documents: DocumentService = Depends(get_document_service),
):
    result = documents.delete(document_id, reason=reason, permanent=permanent)
    return ApiResponse(message="Document deleted successfully", data=result)
