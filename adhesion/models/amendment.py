from sqlalchemy import Column, String, ForeignKey, DateTime, Enum as SQLEnum, Index, JSON, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from adhesion.db.base import Base
import enum


class AmendmentStatus(str, enum.Enum):
    """Amendment review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AmendmentType(str, enum.Enum):
    """Kind of profile change requested."""
    MINOR = "minor"
    MAJOR = "major"
    FAMILY = "family"
    PROFESSIONAL = "professional"


class AmendmentDecision(str, enum.Enum):
    """Operator verdict on a pending amendment."""
    APPROVE = "approve"
    REJECT = "reject"


class Amendment(Base):
    """Post-approval change request on a member profile."""
    __tablename__ = "amendment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    reference_number = Column(String(20), nullable=False, unique=True, index=True)
    amendment_type = Column(SQLEnum(AmendmentType, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=AmendmentType.MINOR, nullable=False)
    before_snapshot = Column(JSON, nullable=False)
    requested_values = Column(JSON, nullable=False)
    changed_fields = Column(JSON, nullable=False)
    justification = Column(String(200), nullable=False)
    supporting_documents = Column(JSON, nullable=True)
    member_comment = Column(String(500), nullable=True)
    status = Column(SQLEnum(AmendmentStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=AmendmentStatus.PENDING, nullable=False, index=True)
    reviewed_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewer_comment = Column(String(500), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    submitted_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        # At most one pending amendment per member
        Index(
            "uq_amendment_pending_per_member",
            "member_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    # Relationships
    member = relationship("Member", back_populates="amendments", foreign_keys=[member_id])
    reviewer = relationship("Member", foreign_keys=[reviewed_by])
