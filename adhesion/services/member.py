import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from adhesion.core.audit import RequestContext, record_audit
from adhesion.core.config import settings
from adhesion.core.email import send_approval_email, send_rejection_email, send_deactivation_email
from adhesion.core.errors import (
    AlreadyApproved,
    AlreadyDeactivated,
    AlreadyPaid,
    AlreadyPendingReview,
    AlreadyProvisioned,
    CardNotAvailable,
    DeactivationForbidden,
    MemberNotFound,
    NoChangesDetected,
    NotPendingReview,
    NotSubmitted,
    OperatorRequired,
    PaymentNotConfirmed,
    ValidationFailed,
)
from adhesion.core.security import get_password_hash
from adhesion.models.amendment import Amendment, AmendmentStatus
from adhesion.models.form import MembershipForm
from adhesion.models.member import (
    Member,
    MemberRole,
    MemberStatus,
    MemberStatusHistory,
    OPERATOR_ROLES,
    RejectionCategory,
)
from adhesion.models.system import PresidentSignature
from adhesion.services.auth import assign_username, generate_temporary_password
from adhesion.services.identity import ensure_unique_identity
from adhesion.services.profile import (
    PROFILE_FIELDS,
    apply_profile_values,
    compute_diff,
    format_day_month_year,
    profile_snapshot,
)
from adhesion.services.references import next_form_code, next_membership_reference

logger = logging.getLogger(__name__)


@dataclass
class IssuedCredentials:
    """Login identifier and one-time temporary password, shown once to the operator."""
    member: Member
    username: str
    temporary_password: str


def get_member(db: Session, member_id: UUID, lock: bool = False) -> Member:
    """Load a member, optionally locking the row for the rest of the transaction."""
    query = db.query(Member).filter(Member.id == member_id)
    if lock:
        query = query.with_for_update().populate_existing()
    member = query.first()
    if not member:
        raise MemberNotFound(context={"member_id": str(member_id)})
    return member


def get_operator(db: Session, operator_id: UUID) -> Member:
    """Load the acting operator, refusing anyone who is not an active secretary or president."""
    operator = db.query(Member).filter(Member.id == operator_id).first()
    if operator is None or operator.role not in OPERATOR_ROLES or not operator.is_active:
        raise OperatorRequired(context={"actor_id": str(operator_id)})
    return operator


def get_active_form(db: Session, member_id: UUID, lock: bool = False) -> Optional[MembershipForm]:
    query = db.query(MembershipForm).filter(
        MembershipForm.member_id == member_id,
        MembershipForm.is_active_version == True,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def _record_status_change(
    db: Session,
    member: Member,
    old_status: Optional[MemberStatus],
    new_status: MemberStatus,
    changed_by: Optional[UUID],
    reason: str = None,
) -> None:
    member.status = new_status
    if old_status == new_status:
        return
    db.add(MemberStatusHistory(
        member_id=member.id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        reason=reason,
    ))


def _issue_credentials(db: Session, member: Member) -> IssuedCredentials:
    username = assign_username(db, member)
    temporary_password = generate_temporary_password()
    member.password_hash = get_password_hash(temporary_password)
    member.must_change_password = True
    member.has_paid = True
    return IssuedCredentials(member=member, username=username, temporary_password=temporary_password)


def issue_identifier(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    confirmed_paid: bool,
    context: Optional[RequestContext] = None,
) -> IssuedCredentials:
    """Create login credentials for a member whose fee has been paid.

    Status and form submission state are left untouched.
    """
    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if member.username:
            raise AlreadyProvisioned(context={"member_id": str(member.id), "username": member.username})
        if not confirmed_paid:
            raise PaymentNotConfirmed(context={"member_id": str(member.id)})

        issued = _issue_credentials(db, member)
        record_audit(
            db,
            "IDENTIFIER_ISSUED",
            actor=operator,
            member_id=member.id,
            details={"username": issued.username, "has_paid": True},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Identifier %s issued for member %s by %s", issued.username, member.id, operator.id)
    return issued


def provision_member(
    db: Session,
    operator_id: UUID,
    first_names: str,
    last_name: str,
    phone: str,
    email: Optional[str] = None,
    has_paid: bool = False,
    context: Optional[RequestContext] = None,
) -> Tuple[Member, Optional[IssuedCredentials]]:
    """Operator creates a member record before any form is submitted.

    Credentials are issued at once when the fee is already paid, otherwise
    later through issue_identifier.
    """
    try:
        operator = get_operator(db, operator_id)
        ensure_unique_identity(db, email=email, phone=phone)
        reference = next_membership_reference(db, MemberRole.MEMBER)

        member = Member(
            membership_reference=reference,
            role=MemberRole.MEMBER,
            status=MemberStatus.PENDING,
            first_names=first_names.strip(),
            last_name=last_name.strip(),
            phone=phone,
            email=email,
            has_paid=has_paid,
            has_submitted_form=False,
        )
        db.add(member)
        db.flush()
        _record_status_change(db, member, None, MemberStatus.PENDING, operator.id, "Provisioned by secretariat")

        issued = _issue_credentials(db, member) if has_paid else None
        record_audit(
            db,
            "MEMBER_PROVISIONED",
            actor=operator,
            member_id=member.id,
            details={
                "full_name": member.full_name,
                "membership_reference": reference,
                "username": issued.username if issued else None,
                "has_paid": has_paid,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Member %s provisioned by %s (reference %s)", member.id, operator.id, reference)
    return member, issued


def mark_paid(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    context: Optional[RequestContext] = None,
) -> Member:
    """Record the membership fee as paid."""
    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if member.has_paid:
            raise AlreadyPaid(context={"member_id": str(member.id)})
        member.has_paid = True
        record_audit(db, "MARKED_AS_PAID", actor=operator, member_id=member.id, context=context)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Member %s marked as paid by %s", member.id, operator.id)
    return member


def submit_form(
    db: Session,
    member_id: UUID,
    profile: Dict[str, Any],
    document_url: str,
    actor: Optional[Member] = None,
    context: Optional[RequestContext] = None,
) -> Member:
    """
    Attach a membership form to a member and queue it for review.

    A first submission (or the first one after an operator reset) creates a
    new form version. A resubmission after rejection updates the active
    version in place and increments its resubmission counter; the replaced
    snapshot is kept in the audit entry.

    Args:
        db: Database session
        member_id: Member submitting (or submitted for)
        profile: Validated profile values in snapshot form
        document_url: URL of the signed form document
        actor: Member or operator performing the submission, None for public intake
        context: Client information for the audit trail

    Returns:
        The member, now PENDING with has_submitted_form set
    """
    try:
        member = get_member(db, member_id, lock=True)
        if member.status == MemberStatus.APPROVED:
            raise AlreadyApproved(context={"member_id": str(member.id)})
        if member.has_submitted_form and member.status == MemberStatus.PENDING:
            raise AlreadyPendingReview(context={"member_id": str(member.id)})

        ensure_unique_identity(
            db,
            email=profile.get("email"),
            id_number=profile.get("id_number"),
            phone=profile.get("phone"),
            exclude_member_id=member.id,
        )

        was_rejected = member.status == MemberStatus.REJECTED
        apply_profile_values(member, profile)
        snapshot = dict(profile_snapshot(member))
        snapshot["document_url"] = document_url

        active_form = get_active_form(db, member.id, lock=True)
        previous_snapshot = None
        if was_rejected and active_form is not None:
            previous_snapshot = active_form.snapshot
            active_form.snapshot = snapshot
            active_form.document_url = document_url
            active_form.resubmission_count = (active_form.resubmission_count or 0) + 1
            form = active_form
            action = "FORM_RESUBMITTED_AFTER_REJECTION"
        else:
            if active_form is not None:
                active_form.is_active_version = False
                db.flush()
            last_version = db.query(func.max(MembershipForm.version)).filter(
                MembershipForm.member_id == member.id
            ).scalar() or 0
            form = MembershipForm(
                member_id=member.id,
                version=last_version + 1,
                snapshot=snapshot,
                document_url=document_url,
                is_active_version=True,
                resubmission_count=0,
            )
            db.add(form)
            action = "FORM_SUBMITTED"

        old_status = member.status
        member.has_submitted_form = True
        member.rejection_reason = None
        member.rejected_at = None
        member.rejected_by = None
        _record_status_change(
            db, member, old_status, MemberStatus.PENDING,
            actor.id if actor is not None else None,
            "Resubmitted after rejection" if was_rejected else None,
        )

        details = {
            "version": form.version,
            "resubmission_count": form.resubmission_count,
            "document_url": document_url,
        }
        if previous_snapshot is not None:
            details["previous_snapshot"] = previous_snapshot
        record_audit(db, action, actor=actor, member_id=member.id, details=details, context=context)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Membership form submitted for member %s (%s)", member.id, action)
    return member


def submit_application(
    db: Session,
    profile: Dict[str, Any],
    document_url: str,
    context: Optional[RequestContext] = None,
) -> Member:
    """Public intake of a membership application.

    The phone number identifies a returning applicant: a member provisioned
    by the secretariat submits their first form, a rejected applicant
    resubmits. Anyone else gets a new PENDING member with a membership
    reference and a first form version.
    """
    phone = profile["phone"]
    existing = db.query(Member).filter(Member.phone == phone).order_by(Member.created_at).first()
    if existing is not None:
        if existing.status == MemberStatus.APPROVED:
            raise AlreadyApproved(
                hints=["Log in to your member area to request a profile amendment."],
                context={"membership_reference": existing.membership_reference},
            )
        if existing.has_submitted_form and existing.status == MemberStatus.PENDING:
            raise AlreadyPendingReview(context={"membership_reference": existing.membership_reference})
        return submit_form(db, existing.id, profile, document_url, context=context)

    try:
        ensure_unique_identity(db, email=profile.get("email"), id_number=profile.get("id_number"))
        reference = next_membership_reference(db, MemberRole.MEMBER)

        member = Member(
            membership_reference=reference,
            role=MemberRole.MEMBER,
            status=MemberStatus.PENDING,
            has_submitted_form=True,
        )
        apply_profile_values(member, profile)
        db.add(member)
        db.flush()

        snapshot = dict(profile_snapshot(member))
        snapshot["document_url"] = document_url
        db.add(MembershipForm(
            member_id=member.id,
            version=1,
            snapshot=snapshot,
            document_url=document_url,
            is_active_version=True,
            resubmission_count=0,
        ))
        _record_status_change(db, member, None, MemberStatus.PENDING, None, "Public application")
        record_audit(
            db,
            "APPLICATION_SUBMITTED",
            member_id=member.id,
            details={"membership_reference": reference, "full_name": member.full_name, "version": 1},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("New application %s received for member %s", reference, member.id)
    return member


def _active_signature(db: Session) -> Optional[dict]:
    signature = db.query(PresidentSignature).filter(
        PresidentSignature.is_active == True
    ).order_by(PresidentSignature.created_at.desc()).first()
    if signature is None:
        return None
    return {
        "signature_id": str(signature.id),
        "president_id": str(signature.president_id),
        "signature_url": signature.signature_url,
    }


def membership_card(db: Session, member_id: UUID) -> dict:
    """Data printed on the digital membership card of an approved member."""
    member = get_member(db, member_id)
    if member.status != MemberStatus.APPROVED:
        raise CardNotAvailable(context={"status": member.status.value})

    signature = db.query(PresidentSignature).filter(
        PresidentSignature.is_active == True
    ).order_by(PresidentSignature.created_at.desc()).first()
    return {
        "membership_reference": member.membership_reference,
        "full_name": member.full_name,
        "photo_url": member.photo_url,
        "form_code": member.form_code,
        "issued_on": format_day_month_year(member.card_issued_at),
        "president_signature_url": signature.signature_url if signature else None,
        "president_name": signature.president.full_name if signature else None,
    }


def approve_member(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    comment: Optional[str] = None,
    final_document_url: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> Member:
    """Approve a submitted membership form and issue the membership card."""
    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if not member.has_submitted_form:
            raise NotSubmitted(context={"member_id": str(member.id)})
        if member.status == MemberStatus.APPROVED:
            raise AlreadyApproved(context={"member_id": str(member.id), "form_code": member.form_code})
        if member.status != MemberStatus.PENDING:
            raise NotPendingReview(context={"member_id": str(member.id), "status": member.status.value})

        now = datetime.utcnow()
        old_status = member.status
        if not member.form_code:
            member.form_code = next_form_code(db, member.role, now.year)
        member.card_issued_at = now
        _record_status_change(db, member, old_status, MemberStatus.APPROVED, operator.id, comment)

        active_form = get_active_form(db, member.id, lock=True)
        if final_document_url and active_form is not None:
            active_form.document_url = final_document_url

        record_audit(
            db,
            "FORM_APPROVED",
            actor=operator,
            member_id=member.id,
            details={
                "old_status": old_status.value,
                "form_code": member.form_code,
                "comment": comment,
                "signature": _active_signature(db),
                "final_document_url": final_document_url,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Member %s approved by %s with form code %s", member.id, operator.id, member.form_code)
    send_approval_email(member.email, member.first_names, member.form_code)
    return member


def reject_member(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    reason: str,
    category: RejectionCategory = RejectionCategory.OTHER,
    suggestions: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> Member:
    """Send a submitted form back to the member with a reason."""
    reason = (reason or "").strip()
    if len(reason) < settings.REJECTION_REASON_MIN_LENGTH:
        raise ValidationFailed(
            message=f"A rejection reason of at least {settings.REJECTION_REASON_MIN_LENGTH} characters is required.",
            context={"field": "reason"},
        )

    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if not member.has_submitted_form:
            raise NotSubmitted(context={"member_id": str(member.id)})
        if member.status == MemberStatus.APPROVED:
            raise AlreadyApproved(context={"member_id": str(member.id), "form_code": member.form_code})
        if member.status != MemberStatus.PENDING:
            raise NotPendingReview(context={"member_id": str(member.id), "status": member.status.value})

        old_status = member.status
        member.rejection_reason = reason
        member.rejected_at = datetime.utcnow()
        member.rejected_by = operator.id
        _record_status_change(db, member, old_status, MemberStatus.REJECTED, operator.id, reason)

        record_audit(
            db,
            "FORM_REJECTED",
            actor=operator,
            member_id=member.id,
            details={
                "old_status": old_status.value,
                "reason": reason,
                "category": category.value,
                "suggestions": suggestions,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Member %s rejected by %s (%s)", member.id, operator.id, category.value)
    send_rejection_email(member.email, member.first_names, reason, suggestions)
    return member


def reset_submission(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    reason: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> Member:
    """Operator override putting a member back before form submission, whatever the current status."""
    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)

        old_status = member.status
        previous_form_code = member.form_code
        member.has_submitted_form = False
        member.form_code = None
        member.card_issued_at = None
        member.rejection_reason = None
        member.rejected_at = None
        member.rejected_by = None
        _record_status_change(db, member, old_status, MemberStatus.PENDING, operator.id, reason)

        deactivated = db.query(MembershipForm).filter(
            MembershipForm.member_id == member.id,
            MembershipForm.is_active_version == True,
        ).update({MembershipForm.is_active_version: False}, synchronize_session="fetch")

        record_audit(
            db,
            "FORM_RESET",
            actor=operator,
            member_id=member.id,
            details={
                "old_status": old_status.value,
                "previous_form_code": previous_form_code,
                "deactivated_versions": deactivated,
                "reason": reason,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Submission reset for member %s by %s", member.id, operator.id)
    return member


def deactivate_member(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    reason: str,
    context: Optional[RequestContext] = None,
) -> Member:
    """Disable a member account. Records are never deleted."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed(message="A deactivation reason is required.", context={"field": "reason"})

    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if member.role in OPERATOR_ROLES:
            raise DeactivationForbidden(context={"member_id": str(member.id)})
        if not member.is_active:
            raise AlreadyDeactivated(context={"member_id": str(member.id)})

        member.is_active = False
        member.deactivated_at = datetime.utcnow()
        member.deactivated_by = operator.id
        member.deactivation_reason = reason
        record_audit(
            db,
            "MEMBER_DEACTIVATED",
            actor=operator,
            member_id=member.id,
            details={"reason": reason, "username": member.username},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Member %s deactivated by %s", member.id, operator.id)
    send_deactivation_email(member.email, member.first_names, reason)
    return member


def edit_member_profile(
    db: Session,
    member_id: UUID,
    operator_id: UUID,
    changes: Dict[str, Any],
    context: Optional[RequestContext] = None,
) -> Member:
    """Operator correction of a submitted form that has not been approved yet.

    Approved profiles only change through amendments.
    """
    try:
        operator = get_operator(db, operator_id)
        member = get_member(db, member_id, lock=True)
        if not member.has_submitted_form:
            raise NotSubmitted(context={"member_id": str(member.id)})
        if member.status == MemberStatus.APPROVED:
            raise AlreadyApproved(hints=["Approved profiles change through amendment requests."])

        diff = compute_diff(profile_snapshot(member), changes, fields=PROFILE_FIELDS)
        if not diff:
            raise NoChangesDetected()
        new_values = {change.field: change.after for change in diff}
        ensure_unique_identity(
            db,
            email=new_values.get("email"),
            id_number=new_values.get("id_number"),
            phone=new_values.get("phone"),
            exclude_member_id=member.id,
        )
        apply_profile_values(member, new_values)

        record_audit(
            db,
            "FORM_EDITED",
            actor=operator,
            member_id=member.id,
            details={"changes": [change.to_dict() for change in diff]},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Profile of member %s edited by %s (%d fields)", member.id, operator.id, len(diff))
    return member


def update_president_signature(
    db: Session,
    operator_id: UUID,
    signature_url: str,
    context: Optional[RequestContext] = None,
) -> PresidentSignature:
    """Replace the signature applied to newly approved cards."""
    try:
        operator = get_operator(db, operator_id)
        president = db.query(Member).filter(
            Member.role == MemberRole.PRESIDENT,
            Member.is_active == True,
        ).first()
        if president is None:
            raise MemberNotFound(
                message="No active president account exists.",
                hints=["Create an account with the president role first."],
            )

        db.query(PresidentSignature).filter(PresidentSignature.is_active == True).update(
            {PresidentSignature.is_active: False}, synchronize_session="fetch"
        )
        signature = PresidentSignature(
            president_id=president.id,
            signature_url=signature_url,
            is_active=True,
            uploaded_by=operator.id,
        )
        db.add(signature)
        record_audit(
            db,
            "SIGNATURE_UPDATED",
            actor=operator,
            member_id=president.id,
            details={"signature_url": signature_url, "president": president.full_name},
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(signature)
    logger.info("President signature updated by %s", operator.id)
    return signature


def list_submitted_forms(
    db: Session,
    status: Optional[MemberStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Member], int]:
    """Members with a submitted form, newest first, for the review desk."""
    query = db.query(Member).filter(
        Member.has_submitted_form == True,
        Member.role == MemberRole.MEMBER,
    )
    if status is not None:
        query = query.filter(Member.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Member.first_names.ilike(pattern),
            Member.last_name.ilike(pattern),
            Member.phone.ilike(pattern),
            Member.membership_reference.ilike(pattern),
            Member.form_code.ilike(pattern),
        ))
    total = query.count()
    members = query.order_by(Member.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return members, total


def membership_statistics(db: Session) -> dict:
    """Dashboard counts over ordinary members (operators excluded)."""
    members = db.query(Member).filter(Member.role == MemberRole.MEMBER)
    recent = datetime.utcnow() - timedelta(days=7)
    return {
        "total_members": members.count(),
        "with_credentials": members.filter(Member.username.isnot(None)).count(),
        "paid": members.filter(Member.has_paid == True).count(),
        "submitted_forms": members.filter(Member.has_submitted_form == True).count(),
        "approved": members.filter(Member.status == MemberStatus.APPROVED).count(),
        "pending_review": members.filter(
            Member.has_submitted_form == True,
            Member.status == MemberStatus.PENDING,
        ).count(),
        "rejected": members.filter(Member.status == MemberStatus.REJECTED).count(),
        "deactivated": members.filter(Member.is_active == False).count(),
        "recently_connected": members.filter(Member.last_login_at >= recent).count(),
        "pending_amendments": db.query(Amendment).filter(
            Amendment.status == AmendmentStatus.PENDING
        ).count(),
    }
