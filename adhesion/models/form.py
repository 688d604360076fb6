from sqlalchemy import Column, Boolean, Integer, ForeignKey, DateTime, Index, JSON, Text, Uuid, UniqueConstraint, text
from sqlalchemy.orm import relationship
import uuid
from adhesion.db.base import Base


class MembershipForm(Base):
    """Versioned snapshot of a submitted membership application."""
    __tablename__ = "membership_form"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    snapshot = Column(JSON, nullable=False)
    document_url = Column(Text, nullable=False)
    is_active_version = Column(Boolean, nullable=False, default=True)
    resubmission_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        UniqueConstraint("member_id", "version", name="uq_membership_form_member_version"),
        # At most one active version per member
        Index(
            "uq_membership_form_active_version",
            "member_id",
            unique=True,
            postgresql_where=text("is_active_version = true"),
            sqlite_where=text("is_active_version = 1"),
        ),
    )

    # Relationships
    member = relationship("Member", back_populates="forms")
