from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

DOCUMENT_TYPES = (
    "driver_license",
    "vehicle_registration",
    "insurance_certificate",
    "national_id",
    "profile_photo",
    "vehicle_photo",
    "inspection_report",
    "other",
)

VERIFICATION_STATUSES = ("pending", "approved", "rejected")

SORT_FIELDS = (
    "created_at",
    "updated_at",
    "verified_at",
    "file_name",
    "document_type",
    "verification_status",
    "entity_type",
)


class ApiResponse(BaseModel, Generic[T]):
    status: Literal["success", "partial", "error"] = "success"
    message: str
    data: T | None = None


class UserSummary(BaseModel):
    id: str
    full_name: str
    email: str
    role: str


class DocumentResponse(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str | None
    verification_status: str
    verified_by: str | None
    verified_at: str | None
    verification_comments: str | None
    rejection_reason: str | None
    processing_status: str | None = None
    processing_progress: int | None = None
    processing_result: str | None = None
    metadata: dict[str, Any]
    processing_metadata: dict[str, Any]
    is_active: bool
    uploaded_by: str | None
    created_at: str
    updated_at: str


class UploadConfig(BaseModel):
    document_type: str
    priority: int | str | None = None
    metadata: dict[str, Any] | None = None


class UploadAck(BaseModel):
    id: str
    file_name: str
    file_path: str
    file_size: int
    status: str = "success"
    queue_id: str
    created_at: str


class ProcessRequest(BaseModel):
    document_id: str
    processing_options: dict[str, Any] | None = None
    priority: int | str | None = None


class BatchProcessRequest(BaseModel):
    document_ids: list[str] = Field(min_length=1)
    processing_options: dict[str, Any] | None = None


class ProcessingAck(BaseModel):
    document_id: str
    status: str = "queued"
    queue_id: str
    estimated_time: int = 30
    timestamp: str


class ProcessingStatusUpdate(BaseModel):
    document_id: str
    status: str
    progress: int | None = Field(default=None, ge=0, le=100)
    result: str | None = None
    metadata: dict[str, Any] | None = None


class VerifyRequest(BaseModel):
    verification_status: str
    comments: str | None = Field(default=None, max_length=1000)
    rejection_reason: str | None = Field(default=None, max_length=500)
    metadata: dict[str, Any] | None = None


class BatchVerifyItem(VerifyRequest):
    document_id: str


class BatchVerifyRequest(BaseModel):
    verifications: list[BatchVerifyItem] = Field(min_length=1)


class VerificationResult(BaseModel):
    document_id: str
    verification_status: str
    comments: str | None
    rejection_reason: str | None
    metadata: dict[str, Any]
    verified_at: str | None
    verified_by: str | None
    verified_by_user: UserSummary | None = None


class DocumentUpdate(BaseModel):
    document_type: str | None = None
    metadata: dict[str, Any] | None = None
    is_active: bool | None = None


class BatchDeleteRequest(BaseModel):
    document_ids: list[str] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=500)
    permanent: bool = False


class DeletionResult(BaseModel):
    id: str
    status: Literal["success", "failed"] = "success"
    permanent: bool = False
    deleted_at: str


class BatchResponse(BaseModel, Generic[T]):
    succeeded: list[T]
    success_count: int
    failure_count: int
    errors: list[str]


class BatchDeleteResponse(BatchResponse[DeletionResult]):
    results: list[DeletionResult]


class DocumentQuery(BaseModel):
    search: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    document_type: str | None = None
    verification_status: str | None = None
    verified_from: str | None = None
    verified_to: str | None = None
    uploaded_from: str | None = None
    uploaded_to: str | None = None
    verified_by: str | None = None
    uploaded_by: str | None = None
    include_inactive: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc", "ASC", "DESC"] = "desc"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class DocumentPage(BaseModel):
    items: list[DocumentResponse]
    pagination: Pagination


class StatisticsQuery(BaseModel):
    entity_type: str | None = None
    from_date: str | None = None
    to_date: str | None = None
    include_inactive: bool = False


class DocumentStatistics(BaseModel):
    total_documents: int
    pending_documents: int
    approved_documents: int
    rejected_documents: int
    processing_documents: int
    by_document_type: dict[str, int]
    by_entity_type: dict[str, int]
    by_verification_status: dict[str, int]
    by_processing_status: dict[str, int]
    uploads_last_30_days: int
    verifications_last_30_days: int


class ExportRequest(BaseModel):
    format: Literal["csv", "json"] = "csv"
    filters: DocumentQuery | None = None


class QueueStatus(BaseModel):
    queue_name: str
    message_count: int | None
    consumer_count: int | None
    status: str
