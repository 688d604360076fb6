from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, DateTime, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from adhesion.db.base import Base


class DocumentCategory(Base):
    """Category grouping official documents (statutes, minutes, circulars...)."""
    __tablename__ = "document_category"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=text("CURRENT_TIMESTAMP"))

    # Relationships
    documents = relationship("OfficialDocument", back_populates="category")
    creator = relationship("Member", foreign_keys=[created_by])


class OfficialDocument(Base):
    """PDF published by the secretariat. Removal only deactivates it."""
    __tablename__ = "official_document"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("document_category.id"), nullable=False, index=True)
    file_url = Column(Text, nullable=False)
    file_id = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    original_filename = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    uploaded_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    uploaded_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=text("CURRENT_TIMESTAMP"))

    # Relationships
    category = relationship("DocumentCategory", back_populates="documents")
    uploader = relationship("Member", foreign_keys=[uploaded_by])
