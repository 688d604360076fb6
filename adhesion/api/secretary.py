from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from adhesion.db.base import get_db
from adhesion.core.audit import RequestContext
from adhesion.core.dependencies import require_operation, get_request_context
from adhesion.models.member import Member, MemberStatus
from adhesion.schemas.member import (
    ApproveRequest,
    CredentialsResponse,
    DeactivateRequest,
    FormListResponse,
    FormSubmission,
    IssueIdentifierRequest,
    MemberResponse,
    MembershipFormResponse,
    ProfileChanges,
    ProvisionMemberRequest,
    ProvisionResponse,
    RejectRequest,
    ResetRequest,
    SignatureUpdateRequest,
)
from adhesion.schemas.amendment import AmendmentDecisionRequest, AmendmentResponse
from adhesion.services.rbac import Operation
from adhesion.services import member as member_service
from adhesion.services import amendment as amendment_service

router = APIRouter(prefix="/api/secretary", tags=["secretary"])


def _credentials_response(issued) -> CredentialsResponse:
    return CredentialsResponse(
        member=MemberResponse.from_member(issued.member),
        username=issued.username,
        temporary_password=issued.temporary_password,
    )


@router.post("/members", response_model=ProvisionResponse, status_code=status.HTTP_201_CREATED)
def provision_member(
    payload: ProvisionMemberRequest,
    current_member: Member = Depends(require_operation(Operation.PROVISION_MEMBER)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Create a member before any form is submitted. Identifiers are issued at once if paid."""
    member, issued = member_service.provision_member(
        db,
        current_member.id,
        first_names=payload.first_names,
        last_name=payload.last_name,
        phone=payload.phone,
        email=payload.email,
        has_paid=payload.has_paid,
        context=context,
    )
    return ProvisionResponse(
        member=MemberResponse.from_member(member),
        credentials=_credentials_response(issued) if issued else None,
    )


@router.get("/members/{member_id}")
def get_member_detail(
    member_id: UUID,
    current_member: Member = Depends(require_operation(Operation.VIEW_FORMS)),
    db: Session = Depends(get_db)
):
    """Member record with all form versions and status history."""
    member = member_service.get_member(db, member_id)
    return {
        "member": MemberResponse.from_member(member),
        "forms": [MembershipFormResponse.from_form(form) for form in member.forms],
        "status_history": [
            {
                "old_status": entry.old_status.value if entry.old_status else None,
                "new_status": entry.new_status.value,
                "changed_by": str(entry.changed_by) if entry.changed_by else None,
                "changed_at": entry.changed_at.isoformat() if entry.changed_at else None,
                "reason": entry.reason,
            }
            for entry in member.status_history
        ],
    }


@router.post("/members/{member_id}/identifier", response_model=CredentialsResponse)
def issue_identifier(
    member_id: UUID,
    payload: IssueIdentifierRequest,
    current_member: Member = Depends(require_operation(Operation.ISSUE_IDENTIFIER)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Issue login credentials. The temporary password is only shown in this response."""
    issued = member_service.issue_identifier(
        db, member_id, current_member.id, payload.confirmed_paid, context=context
    )
    return _credentials_response(issued)


@router.post("/members/{member_id}/paid", response_model=MemberResponse)
def mark_member_paid(
    member_id: UUID,
    current_member: Member = Depends(require_operation(Operation.MARK_PAID)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Record the membership fee as paid."""
    member = member_service.mark_paid(db, member_id, current_member.id, context=context)
    return MemberResponse.from_member(member)


@router.post("/members/{member_id}/form", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def submit_form_on_behalf(
    member_id: UUID,
    payload: FormSubmission,
    current_member: Member = Depends(require_operation(Operation.SUBMIT_FORM_ON_BEHALF)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Submit a paper form for a member."""
    member = member_service.submit_form(
        db,
        member_id,
        payload.profile_values(),
        payload.document_url,
        actor=current_member,
        context=context,
    )
    return MemberResponse.from_member(member)


@router.post("/members/{member_id}/approve", response_model=MemberResponse)
def approve_member(
    member_id: UUID,
    payload: ApproveRequest,
    current_member: Member = Depends(require_operation(Operation.APPROVE_FORM)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Approve a pending form and issue the membership card."""
    member = member_service.approve_member(
        db,
        member_id,
        current_member.id,
        comment=payload.comment,
        final_document_url=payload.final_document_url,
        context=context,
    )
    return MemberResponse.from_member(member)


@router.post("/members/{member_id}/reject", response_model=MemberResponse)
def reject_member(
    member_id: UUID,
    payload: RejectRequest,
    current_member: Member = Depends(require_operation(Operation.REJECT_FORM)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Send a pending form back to the member."""
    member = member_service.reject_member(
        db,
        member_id,
        current_member.id,
        payload.reason,
        category=payload.category,
        suggestions=payload.suggestions,
        context=context,
    )
    return MemberResponse.from_member(member)


@router.post("/members/{member_id}/reset", response_model=MemberResponse)
def reset_member_submission(
    member_id: UUID,
    payload: ResetRequest,
    current_member: Member = Depends(require_operation(Operation.RESET_FORM)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Delete the submission so the member can start over."""
    member = member_service.reset_submission(
        db, member_id, current_member.id, reason=payload.reason, context=context
    )
    return MemberResponse.from_member(member)


@router.post("/members/{member_id}/deactivate", response_model=MemberResponse)
def deactivate_member(
    member_id: UUID,
    payload: DeactivateRequest,
    current_member: Member = Depends(require_operation(Operation.DEACTIVATE_MEMBER)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Disable a member account."""
    member = member_service.deactivate_member(
        db, member_id, current_member.id, payload.reason, context=context
    )
    return MemberResponse.from_member(member)


@router.patch("/members/{member_id}/profile", response_model=MemberResponse)
def edit_member_profile(
    member_id: UUID,
    payload: ProfileChanges,
    current_member: Member = Depends(require_operation(Operation.EDIT_MEMBER_PROFILE)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Correct a submitted form that has not been approved yet."""
    member = member_service.edit_member_profile(
        db, member_id, current_member.id, payload.profile_values(), context=context
    )
    return MemberResponse.from_member(member)


@router.get("/forms", response_model=FormListResponse)
def list_forms(
    status: Optional[MemberStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_member: Member = Depends(require_operation(Operation.VIEW_FORMS)),
    db: Session = Depends(get_db)
):
    """Submitted forms, newest first, optionally filtered by status."""
    members, total = member_service.list_submitted_forms(db, status=status, search=search, page=page, limit=limit)
    return FormListResponse(
        items=[MemberResponse.from_member(member) for member in members],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/dashboard")
def get_dashboard(
    current_member: Member = Depends(require_operation(Operation.VIEW_STATISTICS)),
    db: Session = Depends(get_db)
):
    """Membership counts for the secretariat dashboard."""
    return member_service.membership_statistics(db)


@router.put("/signature")
def update_signature(
    payload: SignatureUpdateRequest,
    current_member: Member = Depends(require_operation(Operation.UPDATE_SIGNATURE)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Replace the president's signature used on new cards."""
    signature = member_service.update_president_signature(
        db, current_member.id, payload.signature_url, context=context
    )
    return {
        "id": str(signature.id),
        "president_id": str(signature.president_id),
        "signature_url": signature.signature_url,
        "is_active": signature.is_active,
    }


@router.get("/amendments")
def list_pending_amendments(
    current_member: Member = Depends(require_operation(Operation.VIEW_PENDING_AMENDMENTS)),
    db: Session = Depends(get_db)
):
    """Amendments awaiting a decision, oldest first."""
    amendments = amendment_service.list_pending_amendments(db)
    return {
        "amendments": [AmendmentResponse.from_amendment(amendment) for amendment in amendments],
        "total": len(amendments),
    }


@router.get("/amendments/{amendment_id}", response_model=AmendmentResponse)
def get_amendment(
    amendment_id: UUID,
    current_member: Member = Depends(require_operation(Operation.VIEW_PENDING_AMENDMENTS)),
    db: Session = Depends(get_db)
):
    return AmendmentResponse.from_amendment(amendment_service.get_amendment(db, amendment_id))


@router.post("/amendments/{amendment_id}/decision", response_model=AmendmentResponse)
def decide_amendment(
    amendment_id: UUID,
    payload: AmendmentDecisionRequest,
    current_member: Member = Depends(require_operation(Operation.DECIDE_AMENDMENT)),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Approve or reject an amendment. Approval updates the member profile."""
    amendment = amendment_service.decide_amendment(
        db,
        amendment_id,
        current_member.id,
        payload.decision,
        comment=payload.comment,
        rejection_reason=payload.rejection_reason,
        context=context,
    )
    return AmendmentResponse.from_amendment(amendment)
