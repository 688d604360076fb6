from adhesion.db.base import Base

# Import all models so Alembic can detect them
from adhesion.models.member import Member, MemberRole, MemberStatus, MemberStatusHistory, IdDocumentType, RejectionCategory
from adhesion.models.form import MembershipForm
from adhesion.models.amendment import Amendment, AmendmentStatus, AmendmentType, AmendmentDecision
from adhesion.models.system import AuditEntry, ReferenceCounter, PresidentSignature
from adhesion.models.document import DocumentCategory, OfficialDocument

__all__ = [
    "Base",
    "Member",
    "MemberRole",
    "MemberStatus",
    "MemberStatusHistory",
    "IdDocumentType",
    "RejectionCategory",
    "MembershipForm",
    "Amendment",
    "AmendmentStatus",
    "AmendmentType",
    "AmendmentDecision",
    "AuditEntry",
    "ReferenceCounter",
    "PresidentSignature",
    "DocumentCategory",
    "OfficialDocument",
]
