from sqlalchemy import JSON, Boolean, Column, Index, Integer, Text
from compliance_docs.database import Base


class DocumentRecord(Base):
    __tablename__ = "document_records"
    __table_args__ = (
        Index("idx_documents_entity", "entity_type", "entity_id"),
        Index("idx_documents_type", "document_type"),
        Index("idx_documents_status", "verification_status"),
    )

    id = Column(Text, primary_key=True)
    # No foreign key: entity_id points into drivers, vehicles or users depending on entity_type.
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False)
    document_type = Column(Text, nullable=False)
    file_name = Column(Text, nullable=False, unique=True)
    file_path = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(Text)
    verification_status = Column(Text, nullable=False, default="pending")
    verified_by = Column(Text)
    verified_at = Column(Text)
    verification_comments = Column(Text)
    rejection_reason = Column(Text)
    # "metadata" is reserved on declarative classes.
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    processing_metadata = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    uploaded_by = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
