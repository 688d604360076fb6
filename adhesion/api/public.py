from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from adhesion.db.base import get_db
from adhesion.core.audit import RequestContext
from adhesion.core.dependencies import get_request_context
from adhesion.schemas.member import FormSubmission, MemberResponse
from adhesion.services.member import submit_application
from adhesion.services.directory import application_status, rejection_details, public_directory

router = APIRouter(prefix="/api/public", tags=["public"])


@router.post("/applications", status_code=status.HTTP_201_CREATED)
def apply_for_membership(
    payload: FormSubmission,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Submit a membership application. A rejected applicant resubmits with the same phone number."""
    member = submit_application(db, payload.profile_values(), payload.document_url, context=context)
    return {
        "message": "Application received",
        "reference": member.membership_reference,
        "member": MemberResponse.from_member(member),
    }


@router.get("/applications/status")
def get_application_status(
    phone: str = Query(..., min_length=8),
    reference: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Check the status of an application with the phone number and membership reference."""
    return application_status(db, phone.replace(" ", ""), reference.strip())


@router.get("/applications/rejection")
def get_rejection_details(
    phone: str = Query(..., min_length=8),
    db: Session = Depends(get_db),
):
    """Explain why an application was rejected."""
    return rejection_details(db, phone.replace(" ", ""))


@router.get("/directory")
def get_directory(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Public list of approved members."""
    members = public_directory(db, search)
    return {"members": members, "total": len(members)}
