import csv
import io
import math
from dataclasses import replace
from typing import Any

from compliance_docs.errors import BadRequestError
from compliance_docs.models.document import DocumentRecord
from compliance_docs.schemas.document import (
    DocumentPage,
    DocumentQuery,
    DocumentStatistics,
    Pagination,
    SORT_FIELDS,
    StatisticsQuery,
)
from compliance_docs.services.document_repository import DocumentFilters, DocumentRepository
from compliance_docs.services.document_service import document_to_response
from compliance_docs.utils.clock import days_ago

IN_FLIGHT_PROCESSING_STATUSES = ("queued", "processing")
RECENT_ACTIVITY_DAYS = 30

EXPORT_COLUMNS = [
    "id", "entity_type", "entity_id", "document_type", "file_name", "file_size",
    "mime_type", "verification_status", "verified_by", "verified_at",
    "rejection_reason", "is_active", "uploaded_by", "created_at", "updated_at",
]


def paginate(total: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total / limit) if limit else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def _filters_from_query(query: DocumentQuery) -> DocumentFilters:
    return DocumentFilters(
        search=query.search,
        entity_type=query.entity_type,
        entity_id=query.entity_id,
        document_type=query.document_type,
        verification_status=query.verification_status,
        verified_from=query.verified_from,
        verified_to=query.verified_to,
        uploaded_from=query.uploaded_from,
        uploaded_to=query.uploaded_to,
        verified_by=query.verified_by,
        uploaded_by=query.uploaded_by,
        include_inactive=query.include_inactive,
    )


class QueryService:
    def __init__(self, repository: DocumentRepository):
        self.repository = repository

    def list_documents(self, query: DocumentQuery) -> DocumentPage:
        if query.sort_by not in SORT_FIELDS:
            raise BadRequestError(
                f"Invalid sort field '{query.sort_by}'. Must be one of: {', '.join(SORT_FIELDS)}"
            )
        skip = (query.page - 1) * query.limit
        total, records = self.repository.page(
            _filters_from_query(query),
            sort_by=query.sort_by,
            descending=query.sort_order.lower() == "desc",
            offset=skip,
            limit=query.limit,
        )
        return DocumentPage(
            items=[document_to_response(r) for r in records],
            pagination=paginate(total, query.page, query.limit),
        )

    def statistics(self, query: StatisticsQuery) -> DocumentStatistics:
        # Every figure below starts again from ``base``; no query is narrowed
        # and then reused, so the grouped counts always add up to the total.
        base = DocumentFilters(
            entity_type=query.entity_type,
            uploaded_from=query.from_date,
            uploaded_to=query.to_date,
            include_inactive=query.include_inactive,
        )
        repo = self.repository
        since = days_ago(RECENT_ACTIVITY_DAYS)
        processing_status = DocumentRecord.processing_metadata["status"].as_string()

        return DocumentStatistics(
            total_documents=repo.count(base),
            pending_documents=repo.count(replace(base, verification_status="pending")),
            approved_documents=repo.count(replace(base, verification_status="approved")),
            rejected_documents=repo.count(replace(base, verification_status="rejected")),
            processing_documents=repo.count(base, processing_status.in_(IN_FLIGHT_PROCESSING_STATUSES)),
            by_document_type=repo.count_grouped(base, DocumentRecord.document_type),
            by_entity_type=repo.count_grouped(base, DocumentRecord.entity_type),
            by_verification_status=repo.count_grouped(base, DocumentRecord.verification_status),
            by_processing_status=repo.count_grouped(base, processing_status),
            uploads_last_30_days=repo.count(base, DocumentRecord.created_at >= since),
            verifications_last_30_days=repo.count(base, DocumentRecord.verified_at >= since),
        )

    # --- Export ---

    def _export_rows(self, query: DocumentQuery) -> list[DocumentRecord]:
        return (
            self.repository.filtered(_filters_from_query(query))
            .order_by(DocumentRecord.created_at.desc())
            .all()
        )

    def export_csv(self, query: DocumentQuery) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(EXPORT_COLUMNS)
        for record in self._export_rows(query):
            writer.writerow([getattr(record, column) for column in EXPORT_COLUMNS])
        return output.getvalue()

    def export_json(self, query: DocumentQuery) -> dict[str, Any]:
        documents = [
            document_to_response(record).model_dump() for record in self._export_rows(query)
        ]
        return {"version": "1", "count": len(documents), "documents": documents}
