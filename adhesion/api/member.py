from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from adhesion.db.base import get_db
from adhesion.core.audit import RequestContext
from adhesion.core.dependencies import require_operation, get_request_context
from adhesion.models.member import Member
from adhesion.schemas.member import FormSubmission, MemberResponse, MembershipFormResponse
from adhesion.schemas.amendment import AmendmentCreate
from adhesion.services.rbac import Operation
from adhesion.services.member import get_active_form, membership_card, submit_form
from adhesion.services.amendment import amendment_view, list_member_amendments, submit_amendment

router = APIRouter(prefix="/api/member", tags=["member"])


@router.get("/form")
def get_my_form(
    current_member: Member = Depends(require_operation(Operation.SUBMIT_OWN_FORM)),
    db: Session = Depends(get_db)
):
    """Current membership status and active form version."""
    form = get_active_form(db, current_member.id)
    return {
        "member": MemberResponse.from_member(current_member),
        "form": MembershipFormResponse.from_form(form) if form else None,
    }


@router.post("/form", status_code=status.HTTP_201_CREATED)
def submit_my_form(
    payload: FormSubmission,
    current_member: Member = Depends(require_operation(Operation.SUBMIT_OWN_FORM)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Submit (or resubmit after rejection) the membership form."""
    member = submit_form(
        db,
        current_member.id,
        payload.profile_values(),
        payload.document_url,
        actor=current_member,
        context=context,
    )
    form = get_active_form(db, member.id)
    return {
        "message": "Membership form submitted",
        "member": MemberResponse.from_member(member),
        "form": MembershipFormResponse.from_form(form) if form else None,
    }


@router.post("/amendments", status_code=status.HTTP_201_CREATED)
def request_amendment(
    payload: AmendmentCreate,
    current_member: Member = Depends(require_operation(Operation.SUBMIT_AMENDMENT)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Ask the secretariat to change approved profile fields."""
    amendment = submit_amendment(
        db,
        current_member.id,
        payload.changes.profile_values(),
        payload.justification,
        amendment_type=payload.amendment_type,
        supporting_documents=payload.supporting_documents,
        member_comment=payload.member_comment,
        context=context,
    )
    return {
        "message": "Amendment request submitted",
        "amendment": amendment_view(amendment),
    }


@router.get("/amendments")
def get_my_amendments(
    current_member: Member = Depends(require_operation(Operation.VIEW_OWN_AMENDMENTS)),
    db: Session = Depends(get_db)
):
    """Recent amendment requests, newest first."""
    return list_member_amendments(db, current_member.id)


@router.get("/card")
def get_my_card(
    current_member: Member = Depends(require_operation(Operation.VIEW_OWN_CARD)),
    db: Session = Depends(get_db)
):
    """Digital membership card, available once the form is approved."""
    return {"card": membership_card(db, current_member.id)}
