from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from adhesion.db.base import get_db
from adhesion.schemas.auth import MemberLogin, Token, PasswordChange, PasswordReset, PasswordResetRequest, CurrentMemberResponse
from adhesion.services.auth import (
    authenticate_member,
    change_password,
    create_access_token_for_member,
    request_password_reset,
    reset_password,
)
from adhesion.core.audit import RequestContext, write_audit_log
from adhesion.core.config import settings
from adhesion.core.dependencies import get_current_member, get_request_context
from adhesion.models.member import Member

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(credentials: MemberLogin, db: Session = Depends(get_db)):
    """Login with the identifier issued by the secretariat and get a JWT token."""
    member = authenticate_member(db, credentials.username, credentials.password)
    access_token = create_access_token_for_member(member)
    if settings.AUDIT_LOG_ENABLED:
        write_audit_log(user_name=member.username, user_role=member.role.value, action="Login", details=f"member={member.id}")
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "must_change_password": bool(member.must_change_password),
    }


@router.get("/me", response_model=CurrentMemberResponse)
def get_current_member_info(current_member: Member = Depends(get_current_member)):
    """Get current member information. Allowed before the temporary password is changed."""
    return CurrentMemberResponse(
        id=str(current_member.id),
        username=current_member.username,
        first_names=current_member.first_names,
        last_name=current_member.last_name,
        email=current_member.email,
        role=current_member.role.value,
        status=current_member.status.value,
        must_change_password=bool(current_member.must_change_password),
        membership_reference=current_member.membership_reference,
        form_code=current_member.form_code,
    )


@router.post("/change-password", response_model=Token)
def change_member_password(
    payload: PasswordChange,
    current_member: Member = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Replace the password (mandatory after identifier issuance) and get a fresh token."""
    member = change_password(db, current_member, payload.current_password, payload.new_password)
    return {
        "access_token": create_access_token_for_member(member),
        "token_type": "bearer",
        "must_change_password": False,
    }


@router.post("/forgot-password")
def forgot_password(
    payload: PasswordResetRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Email a password reset link. The answer never reveals whether the email is registered."""
    request_password_reset(db, payload.email, context=context)
    return {"message": "If that email is registered, a reset link has been sent."}


@router.post("/reset-password")
def reset_member_password(
    payload: PasswordReset,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Set a new password with the token received by email."""
    reset_password(db, payload.token, payload.new_password, context=context)
    return {"message": "Password reset successfully"}
