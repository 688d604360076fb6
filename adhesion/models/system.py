from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, DateTime, Index, JSON, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from adhesion.db.base import Base


class AuditEntry(Base):
    """Append-only record of a state-changing action."""
    __tablename__ = "audit_entry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    action = Column(String(64), nullable=False)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        Index("ix_audit_entry_member_created", "member_id", "created_at"),
        Index("ix_audit_entry_created", "created_at"),
    )


class ReferenceCounter(Base):
    """Single-row counter per reference family."""
    __tablename__ = "reference_counter"

    family = Column(String(64), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=True, onupdate=text("CURRENT_TIMESTAMP"))


class PresidentSignature(Base):
    """Signature image applied to approved membership cards."""
    __tablename__ = "president_signature"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    president_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False)
    signature_url = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    uploaded_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    president = relationship("Member", foreign_keys=[president_id])
