import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adhesion.core.audit import RequestContext, record_audit
from adhesion.core.config import settings
from adhesion.core.email import send_amendment_decision_email
from adhesion.core.errors import (
    AmendmentAlreadyDecided,
    AmendmentAlreadyPending,
    AmendmentNotFound,
    MemberNotApproved,
    NoChangesDetected,
    StaleAmendment,
    ValidationFailed,
)
from adhesion.models.amendment import Amendment, AmendmentDecision, AmendmentStatus, AmendmentType
from adhesion.models.member import MemberStatus
from adhesion.services.identity import ensure_unique_identity
from adhesion.services.member import get_member, get_operator
from adhesion.services.profile import AMENDABLE_FIELDS, apply_profile_values, compute_diff, profile_snapshot
from adhesion.services.references import next_amendment_reference

logger = logging.getLogger(__name__)


def _pending_amendment(db: Session, member_id: UUID) -> Optional[Amendment]:
    return db.query(Amendment).filter(
        Amendment.member_id == member_id,
        Amendment.status == AmendmentStatus.PENDING,
    ).first()


def get_amendment(db: Session, amendment_id: UUID, lock: bool = False) -> Amendment:
    query = db.query(Amendment).filter(Amendment.id == amendment_id)
    if lock:
        query = query.with_for_update().populate_existing()
    amendment = query.first()
    if not amendment:
        raise AmendmentNotFound(context={"amendment_id": str(amendment_id)})
    return amendment


def submit_amendment(
    db: Session,
    member_id: UUID,
    requested: Dict[str, Any],
    justification: str,
    amendment_type: AmendmentType = AmendmentType.MINOR,
    supporting_documents: Optional[List[str]] = None,
    member_comment: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> Amendment:
    """
    Record an approved member's request to change profile fields.

    Only fields whose requested value differs from the current profile are
    kept. The member row stays locked until commit so two submissions for
    the same member cannot both pass the pending check.

    Raises:
        MemberNotApproved: the member's form is not approved
        AmendmentAlreadyPending: another request awaits a decision
        NoChangesDetected: nothing would change
        DuplicateIdentity: the new email, phone or ID number belongs to someone else
    """
    unknown = sorted(set(requested) - set(AMENDABLE_FIELDS))
    if unknown:
        raise ValidationFailed(
            message="Some fields cannot be changed through an amendment.",
            context={"fields": unknown},
        )

    try:
        member = get_member(db, member_id, lock=True)
        if member.status != MemberStatus.APPROVED:
            raise MemberNotApproved(context={"status": member.status.value})

        pending = _pending_amendment(db, member.id)
        if pending is not None:
            raise AmendmentAlreadyPending(pending.reference_number)

        before = profile_snapshot(member, AMENDABLE_FIELDS)
        diff = compute_diff(before, requested)
        if not diff:
            raise NoChangesDetected()
        after = {change.field: change.after for change in diff}
        ensure_unique_identity(
            db,
            email=after.get("email"),
            id_number=after.get("id_number"),
            phone=after.get("phone"),
            exclude_member_id=member.id,
        )

        now = datetime.utcnow()
        reference = next_amendment_reference(db, now.year)
        amendment = Amendment(
            member_id=member.id,
            reference_number=reference,
            amendment_type=amendment_type,
            before_snapshot=before,
            requested_values=after,
            changed_fields=[change.field for change in diff],
            justification=justification.strip(),
            supporting_documents=supporting_documents or [],
            member_comment=member_comment,
            status=AmendmentStatus.PENDING,
            submitted_at=now,
        )
        db.add(amendment)
        db.flush()

        record_audit(
            db,
            "AMENDMENT_SUBMITTED",
            actor=member,
            member_id=member.id,
            details={
                "reference_number": reference,
                "amendment_type": amendment_type.value,
                "changed_fields": amendment.changed_fields,
            },
            context=context,
        )
        db.commit()
    except IntegrityError:
        # A concurrent submission won the one-pending-per-member index
        db.rollback()
        pending = _pending_amendment(db, member_id)
        if pending is not None:
            raise AmendmentAlreadyPending(pending.reference_number)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(amendment)
    logger.info("Amendment %s submitted by member %s (%s)", reference, member_id, ", ".join(amendment.changed_fields))
    return amendment


def decide_amendment(
    db: Session,
    amendment_id: UUID,
    operator_id: UUID,
    decision: AmendmentDecision,
    comment: Optional[str] = None,
    rejection_reason: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> Amendment:
    """
    Approve or reject a pending amendment, exactly once.

    Approval copies the requested values onto the member profile in the same
    transaction. If any changed field no longer holds the value it had when
    the amendment was submitted, the approval is refused with StaleAmendment
    so an intervening edit is never overwritten. Only members that are still
    APPROVED can have an amendment approved. Member status is never touched.
    """
    try:
        operator = get_operator(db, operator_id)
        amendment = get_amendment(db, amendment_id, lock=True)
        if amendment.status != AmendmentStatus.PENDING:
            raise AmendmentAlreadyDecided(context={
                "reference_number": amendment.reference_number,
                "status": amendment.status.value,
            })

        if decision == AmendmentDecision.REJECT:
            rejection_reason = (rejection_reason or "").strip()
            if len(rejection_reason) < settings.REJECTION_REASON_MIN_LENGTH:
                raise ValidationFailed(
                    message=f"A rejection reason of at least {settings.REJECTION_REASON_MIN_LENGTH} characters is required.",
                    context={"field": "rejection_reason"},
                )

        member = get_member(db, amendment.member_id, lock=True)

        if decision == AmendmentDecision.APPROVE:
            if member.status != MemberStatus.APPROVED:
                raise MemberNotApproved(
                    message="The member is no longer approved. This amendment can only be rejected.",
                    context={"reference_number": amendment.reference_number, "status": member.status.value},
                )
            current = profile_snapshot(member, amendment.changed_fields)
            stale = [
                field for field in amendment.changed_fields
                if current.get(field) != amendment.before_snapshot.get(field)
            ]
            if stale:
                raise StaleAmendment(context={
                    "reference_number": amendment.reference_number,
                    "fields": stale,
                })
            ensure_unique_identity(
                db,
                email=amendment.requested_values.get("email"),
                id_number=amendment.requested_values.get("id_number"),
                phone=amendment.requested_values.get("phone"),
                exclude_member_id=member.id,
            )
            apply_profile_values(member, amendment.requested_values)
            amendment.status = AmendmentStatus.APPROVED
            action = "AMENDMENT_APPROVED"
        else:
            amendment.status = AmendmentStatus.REJECTED
            amendment.rejection_reason = rejection_reason
            action = "AMENDMENT_REJECTED"

        amendment.reviewed_by = operator.id
        amendment.reviewed_at = datetime.utcnow()
        amendment.reviewer_comment = comment

        record_audit(
            db,
            action,
            actor=operator,
            member_id=member.id,
            details={
                "reference_number": amendment.reference_number,
                "changed_fields": amendment.changed_fields,
                "requested_values": amendment.requested_values,
                "comment": comment,
                "rejection_reason": amendment.rejection_reason,
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(amendment)
    logger.info("Amendment %s %s by %s", amendment.reference_number, amendment.status.value, operator.id)
    send_amendment_decision_email(
        member.email,
        member.first_names,
        amendment.reference_number,
        approved=amendment.status == AmendmentStatus.APPROVED,
        reason=amendment.rejection_reason,
    )
    return amendment


def list_pending_amendments(db: Session) -> List[Amendment]:
    """Pending amendments, oldest first."""
    return db.query(Amendment).filter(
        Amendment.status == AmendmentStatus.PENDING
    ).order_by(Amendment.submitted_at.asc()).all()


def amendment_view(amendment: Amendment) -> dict:
    """Member-facing projection. Review fields only appear once decided."""
    view = {
        "id": str(amendment.id),
        "reference_number": amendment.reference_number,
        "amendment_type": amendment.amendment_type.value,
        "status": amendment.status.value,
        "changed_fields": list(amendment.changed_fields or []),
        "before": {field: amendment.before_snapshot.get(field) for field in amendment.changed_fields or []},
        "requested_values": dict(amendment.requested_values or {}),
        "justification": amendment.justification,
        "supporting_documents": list(amendment.supporting_documents or []),
        "member_comment": amendment.member_comment,
        "submitted_at": amendment.submitted_at.isoformat() if amendment.submitted_at else None,
    }
    if amendment.status != AmendmentStatus.PENDING:
        view["reviewed_at"] = amendment.reviewed_at.isoformat() if amendment.reviewed_at else None
        view["reviewer_comment"] = amendment.reviewer_comment
    if amendment.status == AmendmentStatus.REJECTED:
        view["rejection_reason"] = amendment.rejection_reason
    return view


def list_member_amendments(db: Session, member_id: UUID) -> dict:
    """A member's most recent amendments, newest first, with per-status counts."""
    amendments = db.query(Amendment).filter(
        Amendment.member_id == member_id
    ).order_by(Amendment.submitted_at.desc()).limit(settings.AMENDMENT_HISTORY_LIMIT).all()

    statistics = {status.value: 0 for status in AmendmentStatus}
    for amendment in db.query(Amendment.status).filter(Amendment.member_id == member_id).all():
        statistics[amendment[0].value] += 1
    statistics["total"] = sum(statistics.values())

    return {
        "amendments": [amendment_view(amendment) for amendment in amendments],
        "statistics": statistics,
    }
