"""Read-only projections for unauthenticated callers."""
from typing import List, Optional

from sqlalchemy.orm import Session

from adhesion.core.errors import ApplicationNotFound
from adhesion.models.member import Member, MemberRole, MemberStatus
from adhesion.models.system import AuditEntry

STATUS_INFO = {
    MemberStatus.PENDING: {
        "label": "Under review",
        "description": "Your application is being reviewed by the secretariat.",
    },
    MemberStatus.APPROVED: {
        "label": "Approved",
        "description": "Your membership has been approved. Welcome to the association!",
    },
    MemberStatus.REJECTED: {
        "label": "Rejected",
        "description": "Your application was rejected. You can correct it and submit it again.",
    },
}

RESUBMISSION_INSTRUCTIONS = [
    "Correct the items mentioned in the rejection reason.",
    "Make sure every document is clear and legible.",
    "Check that all information is correct and complete.",
    "Submit the corrected form again with the same phone number.",
]


def next_actions(member: Member) -> List[str]:
    if member.status == MemberStatus.PENDING:
        actions = ["Wait for the secretariat to review your application."]
        if not member.username:
            actions.append("Login identifiers will be provided once the membership fee is paid.")
        return actions
    if member.status == MemberStatus.APPROVED:
        actions = []
        if member.form_code:
            actions.append("Your membership number has been assigned.")
        if member.username:
            actions.append("Log in to view your digital membership card.")
        else:
            actions.append("Contact the secretariat to receive your login identifiers.")
        return actions
    return ["Correct your application and submit it again."]


def application_status(db: Session, phone: str, reference: str) -> dict:
    """Status of an application, looked up by phone and membership reference."""
    member = db.query(Member).filter(
        Member.phone == phone,
        Member.membership_reference == reference,
    ).first()
    if member is None:
        raise ApplicationNotFound()

    return {
        "reference": member.membership_reference,
        "full_name": member.full_name,
        "phone": member.phone,
        "status": member.status.value,
        "form_code": member.form_code,
        "submitted": bool(member.has_submitted_form),
        "has_credentials": bool(member.username),
        "created_at": member.created_at.isoformat() if member.created_at else None,
        "updated_at": member.updated_at.isoformat() if member.updated_at else None,
        "status_info": STATUS_INFO[member.status],
        "next_actions": next_actions(member),
    }


def rejection_details(db: Session, phone: str) -> dict:
    """Why an application was rejected, so the applicant can correct it."""
    member = db.query(Member).filter(
        Member.phone == phone,
        Member.status == MemberStatus.REJECTED,
    ).first()
    if member is None:
        raise ApplicationNotFound(
            message="No rejected application matches this phone number.",
            hints=["Check the phone number used on the application."],
        )

    last_rejection = db.query(AuditEntry).filter(
        AuditEntry.member_id == member.id,
        AuditEntry.action == "FORM_REJECTED",
    ).order_by(AuditEntry.created_at.desc()).first()
    details = last_rejection.details if last_rejection is not None else {}

    return {
        "full_name": member.full_name,
        "phone": member.phone,
        "status": member.status.value,
        "reason": member.rejection_reason,
        "category": details.get("category"),
        "suggestions": details.get("suggestions"),
        "rejected_at": member.rejected_at.isoformat() if member.rejected_at else None,
        "can_resubmit": True,
        "instructions": RESUBMISSION_INSTRUCTIONS,
    }


def public_directory(db: Session, search: Optional[str] = None) -> List[dict]:
    """Approved, active, ordinary members. Contact and identity data are never exposed."""
    query = db.query(Member).filter(
        Member.status == MemberStatus.APPROVED,
        Member.is_active == True,
        Member.role == MemberRole.MEMBER,
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(Member.first_names.ilike(pattern) | Member.last_name.ilike(pattern))
    members = query.order_by(Member.last_name.asc(), Member.first_names.asc()).all()
    return [
        {
            "first_names": member.first_names,
            "last_name": member.last_name,
            "form_code": member.form_code,
            "city_of_residence": member.city_of_residence,
            "profession": member.profession,
            "photo_url": member.photo_url,
            "member_since": member.card_issued_at.date().isoformat() if member.card_issued_at else None,
        }
        for member in members
    ]
