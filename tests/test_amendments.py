"""
Profile amendment tests: submission, review, history.
"""
import re
import uuid
from datetime import datetime

import pytest

from adhesion.core.config import settings
from adhesion.core.errors import (
    AmendmentAlreadyDecided,
    AmendmentAlreadyPending,
    AmendmentNotFound,
    DuplicateIdentity,
    MemberNotApproved,
    NoChangesDetected,
    StaleAmendment,
    ValidationFailed,
)
from adhesion.models import Amendment, AmendmentDecision, AmendmentStatus, AmendmentType, AuditEntry, MemberStatus
from adhesion.services import amendment as amendment_service
from adhesion.services import member as member_service
from adhesion.services.profile import profile_snapshot

from conftest import DOCUMENT_URL, make_profile

JUSTIFICATION = "I moved to a new flat last month"


def _approved(db, operator, index):
    member = member_service.submit_application(
        db,
        make_profile(
            phone=f"+269321000{index}",
            email=f"member{index}@example.org",
            id_number=f"KM10000{index}",
        ),
        DOCUMENT_URL,
    )
    return member_service.approve_member(db, member.id, operator.id)


def _submit(db, member, **requested):
    requested = requested or {"address": "7 avenue du Prado, Marseille"}
    return amendment_service.submit_amendment(db, member.id, requested, JUSTIFICATION)


def test_submit_amendment_keeps_only_changed_fields(db, approved_member):
    amendment = amendment_service.submit_amendment(
        db,
        approved_member.id,
        {"address": "7 avenue du Prado, Marseille", "profession": "Nurse", "email": ""},
        JUSTIFICATION,
        amendment_type=AmendmentType.MINOR,
    )

    assert amendment.status == AmendmentStatus.PENDING
    assert re.match(r"^AMD-\d{4}-001$", amendment.reference_number)
    assert amendment.changed_fields == ["address"]
    assert amendment.requested_values == {"address": "7 avenue du Prado, Marseille"}
    assert amendment.before_snapshot["address"] == "12 rue de la Paix, Marseille"
    assert amendment.before_snapshot["phone"] == "+2693212345"

    entry = db.query(AuditEntry).filter(AuditEntry.action == "AMENDMENT_SUBMITTED").one()
    assert entry.actor_id == approved_member.id
    assert entry.details["reference_number"] == amendment.reference_number


def test_only_approved_members_can_request_amendments(db, applicant):
    with pytest.raises(MemberNotApproved):
        _submit(db, applicant)


def test_unchanged_values_are_refused(db, approved_member):
    with pytest.raises(NoChangesDetected):
        _submit(db, approved_member, address="12 rue de la Paix, Marseille", phone="+2693212345")

    assert db.query(Amendment).count() == 0


def test_fields_outside_the_amendable_set_are_refused(db, approved_member):
    with pytest.raises(ValidationFailed) as excinfo:
        _submit(db, approved_member, birth_date="01-01-1980")

    assert excinfo.value.context["fields"] == ["birth_date"]


def test_second_pending_amendment_is_refused(db, approved_member):
    first = _submit(db, approved_member)

    with pytest.raises(AmendmentAlreadyPending) as excinfo:
        _submit(db, approved_member, profession="Engineer")

    assert excinfo.value.context["reference_number"] == first.reference_number
    pending = db.query(Amendment).filter(Amendment.status == AmendmentStatus.PENDING).count()
    assert pending == 1


def test_new_amendment_allowed_once_previous_is_decided(db, approved_member, operator):
    first = _submit(db, approved_member)
    amendment_service.decide_amendment(
        db, first.id, operator.id, AmendmentDecision.REJECT, rejection_reason="insufficient proof"
    )

    second = _submit(db, approved_member)

    assert second.reference_number != first.reference_number


def test_amendment_cannot_take_another_members_email(db, approved_member, operator):
    other = _approved(db, operator, 1)

    with pytest.raises(DuplicateIdentity):
        _submit(db, approved_member, email=other.email)


def test_amendment_cannot_take_a_phone_in_use(db, approved_member, operator):
    other_profile = make_profile(phone="+2693299999", email="b.ali@example.org", id_number="KM999999")
    other = member_service.submit_application(db, other_profile, DOCUMENT_URL)
    member_service.reject_member(db, other.id, operator.id, "incomplete documents")

    with pytest.raises(DuplicateIdentity) as excinfo:
        _submit(db, approved_member, phone="+2693299999")

    assert excinfo.value.field == "phone"
    resubmitted = member_service.submit_application(db, other_profile, DOCUMENT_URL)
    assert resubmitted.id == other.id
    assert resubmitted.status == MemberStatus.PENDING


def test_approval_refuses_a_phone_taken_after_submission(db, approved_member, operator):
    amendment = _submit(db, approved_member, phone="+2693299999")
    member_service.submit_application(
        db,
        make_profile(phone="+2693299999", email="b.ali@example.org", id_number="KM999999"),
        DOCUMENT_URL,
    )

    with pytest.raises(DuplicateIdentity) as excinfo:
        amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.APPROVE)

    assert excinfo.value.field == "phone"
    db.refresh(amendment)
    db.refresh(approved_member)
    assert amendment.status == AmendmentStatus.PENDING
    assert approved_member.phone == "+2693212345"


def test_amendment_cannot_be_approved_after_reset(db, approved_member, operator):
    amendment = _submit(db, approved_member)
    member_service.reset_submission(db, approved_member.id, operator.id, reason="Paper form redone")

    with pytest.raises(MemberNotApproved):
        amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.APPROVE)

    db.refresh(approved_member)
    assert approved_member.address == "12 rue de la Paix, Marseille"
    assert approved_member.status == MemberStatus.PENDING

    decided = amendment_service.decide_amendment(
        db, amendment.id, operator.id, AmendmentDecision.REJECT, rejection_reason="Form reset by the secretariat"
    )
    assert decided.status == AmendmentStatus.REJECTED


def test_rejected_amendment_leaves_profile_unchanged(db, approved_member, operator):
    amendment = _submit(
        db, approved_member, phone="+2693999999", address="7 avenue du Prado, Marseille"
    )

    decided = amendment_service.decide_amendment(
        db,
        amendment.id,
        operator.id,
        AmendmentDecision.REJECT,
        comment="Please attach a utility bill",
        rejection_reason="insufficient proof",
    )

    db.refresh(approved_member)
    assert decided.status == AmendmentStatus.REJECTED
    assert decided.rejection_reason == "insufficient proof"
    assert decided.reviewed_by == operator.id
    assert approved_member.phone == "+2693212345"
    assert approved_member.address == "12 rue de la Paix, Marseille"


def test_approved_amendment_copies_only_requested_fields(db, approved_member, operator):
    before = profile_snapshot(approved_member)
    amendment = _submit(db, approved_member, address="X")

    decided = amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.APPROVE)

    db.refresh(approved_member)
    after = profile_snapshot(approved_member)
    assert decided.status == AmendmentStatus.APPROVED
    assert after["address"] == "X"
    assert {key: value for key, value in after.items() if key != "address"} == {
        key: value for key, value in before.items() if key != "address"
    }
    assert approved_member.status == MemberStatus.APPROVED


def test_amendment_is_decided_only_once(db, approved_member, operator):
    amendment = _submit(db, approved_member)
    amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.APPROVE)

    with pytest.raises(AmendmentAlreadyDecided):
        amendment_service.decide_amendment(
            db, amendment.id, operator.id, AmendmentDecision.REJECT, rejection_reason="insufficient proof"
        )


def test_rejection_needs_a_reason(db, approved_member, operator):
    amendment = _submit(db, approved_member)

    with pytest.raises(ValidationFailed):
        amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.REJECT)

    db.refresh(amendment)
    assert amendment.status == AmendmentStatus.PENDING


def test_approval_refused_when_profile_changed_since_submission(db, approved_member, operator):
    amendment = _submit(db, approved_member)
    approved_member.address = "Somewhere else"
    db.commit()

    with pytest.raises(StaleAmendment) as excinfo:
        amendment_service.decide_amendment(db, amendment.id, operator.id, AmendmentDecision.APPROVE)

    assert excinfo.value.context["fields"] == ["address"]
    db.refresh(amendment)
    db.refresh(approved_member)
    assert amendment.status == AmendmentStatus.PENDING
    assert approved_member.address == "Somewhere else"


def test_unknown_amendment(db, operator):
    with pytest.raises(AmendmentNotFound):
        amendment_service.decide_amendment(db, uuid.uuid4(), operator.id, AmendmentDecision.APPROVE)


def test_references_are_distinct_and_increasing(db, operator):
    references = []
    for index in range(5):
        member = _approved(db, operator, index)
        references.append(_submit(db, member).reference_number)

    sequences = [int(reference.rsplit("-", 1)[1]) for reference in references]
    assert len(set(references)) == 5
    assert sequences == [1, 2, 3, 4, 5]


def test_references_continue_from_existing_amendments(db, approved_member):
    year = datetime.utcnow().year
    db.add(Amendment(
        member_id=approved_member.id,
        reference_number=f"AMD-{year}-041",
        amendment_type=AmendmentType.MINOR,
        before_snapshot={},
        requested_values={"address": "old"},
        changed_fields=["address"],
        justification=JUSTIFICATION,
        status=AmendmentStatus.REJECTED,
        submitted_at=datetime(year, 1, 2),
    ))
    db.commit()

    amendment = _submit(db, approved_member)

    assert amendment.reference_number == f"AMD-{year}-042"


def test_pending_amendments_oldest_first(db, operator):
    first_member = _approved(db, operator, 1)
    second_member = _approved(db, operator, 2)
    first = _submit(db, first_member)
    second = _submit(db, second_member)

    pending = amendment_service.list_pending_amendments(db)

    assert [amendment.id for amendment in pending] == [first.id, second.id]


def test_member_history_is_limited_and_redacted(db, approved_member, operator, monkeypatch):
    monkeypatch.setattr(settings, "AMENDMENT_HISTORY_LIMIT", 2)
    rejected = _submit(db, approved_member)
    amendment_service.decide_amendment(
        db, rejected.id, operator.id, AmendmentDecision.REJECT, rejection_reason="insufficient proof"
    )
    approved = _submit(db, approved_member, profession="Engineer")
    amendment_service.decide_amendment(db, approved.id, operator.id, AmendmentDecision.APPROVE)
    pending = _submit(db, approved_member, profession="Architect")

    history = amendment_service.list_member_amendments(db, approved_member.id)

    assert history["statistics"] == {"pending": 1, "approved": 1, "rejected": 1, "total": 3}
    views = history["amendments"]
    assert [view["reference_number"] for view in views] == [
        pending.reference_number,
        approved.reference_number,
    ]
    assert "reviewed_at" not in views[0]
    assert "rejection_reason" not in views[0]
    assert views[1]["reviewed_at"] is not None
    assert "rejection_reason" not in views[1]
    assert views[1]["before"] == {"profession": "Nurse"}
    assert views[1]["requested_values"] == {"profession": "Engineer"}


def test_rejection_reason_visible_on_rejected_view(db, approved_member, operator):
    amendment = _submit(db, approved_member)
    decided = amendment_service.decide_amendment(
        db, amendment.id, operator.id, AmendmentDecision.REJECT, rejection_reason="insufficient proof"
    )

    view = amendment_service.amendment_view(decided)

    assert view["status"] == "rejected"
    assert view["rejection_reason"] == "insufficient proof"
