import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy import Text, asc, cast, desc, func, or_
from sqlalchemy.orm import Query, Session

from compliance_docs.models.document import DocumentRecord
from compliance_docs.services.cache import DOCUMENT_LIST_KEY, document_key

logger = logging.getLogger(__name__)

CommitHook = Callable[[Iterable[str]], None]


@dataclass
class DocumentFilters:
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


class DocumentRepository:
    """Persistence for document records.

    ``on_commit`` is the single place cache invalidation hooks in: it is
    called with the affected cache keys after every successful commit.
    """

    def __init__(self, db: Session, on_commit: CommitHook | None = None):
        self.db = db
        self.on_commit = on_commit

    def _commit(self, *document_ids: str) -> None:
        # A failed commit leaves the session unusable until rolled back.
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if self.on_commit is not None:
            self.on_commit([DOCUMENT_LIST_KEY, *(document_key(i) for i in document_ids)])

    def get(self, document_id: str) -> DocumentRecord | None:
        return self.db.query(DocumentRecord).filter(DocumentRecord.id == document_id).first()

    def add(self, record: DocumentRecord) -> DocumentRecord:
        self.db.add(record)
        self._commit(record.id)
        self.db.refresh(record)
        return record

    def save(self, record: DocumentRecord) -> DocumentRecord:
        self._commit(record.id)
        self.db.refresh(record)
        return record

    def remove(self, record: DocumentRecord) -> None:
        document_id = record.id
        self.db.delete(record)
        self._commit(document_id)

    def discard(self) -> None:
        """Drop uncommitted changes so a failed operation leaves nothing behind."""
        self.db.rollback()

    # --- Queries ---

    def filtered(self, filters: DocumentFilters) -> Query:
        """A fresh query carrying ``filters``; callers may narrow it freely."""
        query = self.db.query(DocumentRecord)

        if not filters.include_inactive:
            query = query.filter(DocumentRecord.is_active.is_(True))
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(
                or_(
                    DocumentRecord.file_name.ilike(pattern),
                    cast(DocumentRecord.metadata_, Text).ilike(pattern),
                )
            )
        if filters.entity_type:
            query = query.filter(DocumentRecord.entity_type == filters.entity_type)
        if filters.entity_id:
            query = query.filter(DocumentRecord.entity_id == filters.entity_id)
        if filters.document_type:
            query = query.filter(DocumentRecord.document_type == filters.document_type)
        if filters.verification_status:
            query = query.filter(DocumentRecord.verification_status == filters.verification_status)
        if filters.verified_from:
            query = query.filter(DocumentRecord.verified_at >= filters.verified_from)
        if filters.verified_to:
            query = query.filter(DocumentRecord.verified_at <= filters.verified_to)
        if filters.uploaded_from:
            query = query.filter(DocumentRecord.created_at >= filters.uploaded_from)
        if filters.uploaded_to:
            query = query.filter(DocumentRecord.created_at <= filters.uploaded_to)
        if filters.verified_by:
            query = query.filter(DocumentRecord.verified_by == filters.verified_by)
        if filters.uploaded_by:
            query = query.filter(DocumentRecord.uploaded_by == filters.uploaded_by)
        return query

    def page(
        self,
        filters: DocumentFilters,
        sort_by: str,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[int, list[DocumentRecord]]:
        total = self.filtered(filters).count()
        column = getattr(DocumentRecord, sort_by)
        order = desc(column) if descending else asc(column)
        items = (
            self.filtered(filters)
            .order_by(order, DocumentRecord.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return total, items

    def count(self, filters: DocumentFilters, *criteria) -> int:
        return self.filtered(filters).filter(*criteria).count()

    def count_grouped(self, filters: DocumentFilters, key) -> dict[str, int]:
        rows = (
            self.filtered(filters)
            .with_entities(key, func.count(DocumentRecord.id))
            .group_by(key)
            .all()
        )
        return {value: n for value, n in rows if value is not None}
