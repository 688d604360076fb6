from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Date, DateTime, Enum as SQLEnum, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from adhesion.db.base import Base
import enum


class MemberRole(str, enum.Enum):
    """Member role enum."""
    MEMBER = "member"
    SECRETARY = "secretary"
    PRESIDENT = "president"


class MemberStatus(str, enum.Enum):
    """Membership form review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class IdDocumentType(str, enum.Enum):
    """Identity document presented at intake."""
    CONSULAR_CARD = "consular_card"
    PASSPORT = "passport"
    NATIONAL_ID = "national_id"
    RESIDENCE_PERMIT = "residence_permit"


class RejectionCategory(str, enum.Enum):
    """Why a membership form was sent back."""
    ILLEGIBLE_DOCUMENTS = "illegible_documents"
    INCORRECT_INFORMATION = "incorrect_information"
    MISSING_DOCUMENTS = "missing_documents"
    INADEQUATE_PHOTO = "inadequate_photo"
    MISSING_SIGNATURE = "missing_signature"
    OTHER = "other"


OPERATOR_ROLES = (MemberRole.SECRETARY, MemberRole.PRESIDENT)

# Tag embedded in membership references and form codes
ROLE_TAGS = {
    MemberRole.MEMBER: "M",
    MemberRole.SECRETARY: "SG",
    MemberRole.PRESIDENT: "P",
}


class Member(Base):
    """A person known to the association, from first contact to approved member."""
    __tablename__ = "member"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Identity and credentials
    username = Column(String(50), nullable=True, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    must_change_password = Column(Boolean, nullable=False, default=False)
    email = Column(String(255), nullable=True, unique=True, index=True)
    membership_reference = Column(String(50), nullable=False, unique=True, index=True)
    role = Column(SQLEnum(MemberRole, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=MemberRole.MEMBER, nullable=False)

    # Workflow
    status = Column(SQLEnum(MemberStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=MemberStatus.PENDING, nullable=False, index=True)
    has_paid = Column(Boolean, nullable=False, default=False)
    has_submitted_form = Column(Boolean, nullable=False, default=False)
    form_code = Column(String(50), nullable=True, unique=True)
    card_issued_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime, nullable=True)
    deactivated_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    deactivation_reason = Column(Text, nullable=True)

    # Profile
    first_names = Column(String(100), nullable=False)
    last_name = Column(String(50), nullable=False)
    birth_date = Column(Date, nullable=True)
    birth_place = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    address = Column(String(200), nullable=True)
    profession = Column(String(100), nullable=True)
    city_of_residence = Column(String(100), nullable=True)
    arrival_date = Column(Date, nullable=True)
    employer_or_school = Column(String(150), nullable=True)
    id_document_type = Column(SQLEnum(IdDocumentType, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=True)
    id_number = Column(String(20), nullable=True, unique=True, index=True)
    id_issue_date = Column(Date, nullable=True)
    spouse_first_name = Column(String(100), nullable=True)
    spouse_last_name = Column(String(50), nullable=True)
    children_count = Column(Integer, nullable=False, default=0)
    photo_url = Column(Text, nullable=True)
    signature_url = Column(Text, nullable=True)
    comment = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=text("CURRENT_TIMESTAMP"))
    last_login_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String(255), nullable=True, index=True)
    password_reset_expires = Column(DateTime, nullable=True)

    # Relationships
    forms = relationship("MembershipForm", back_populates="member", order_by="MembershipForm.version")
    amendments = relationship("Amendment", back_populates="member", foreign_keys="[Amendment.member_id]")
    status_history = relationship("MemberStatusHistory", back_populates="member", foreign_keys="[MemberStatusHistory.member_id]", order_by="desc(MemberStatusHistory.changed_at)")

    @property
    def full_name(self) -> str:
        return f"{self.first_names} {self.last_name}".strip()


class MemberStatusHistory(Base):
    """Audit trail for member status changes."""
    __tablename__ = "member_status_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    old_status = Column(SQLEnum(MemberStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=True)
    new_status = Column(SQLEnum(MemberStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    changed_by = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True)
    changed_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    reason = Column(Text, nullable=True)

    # Relationships
    member = relationship("Member", back_populates="status_history", foreign_keys=[member_id])
