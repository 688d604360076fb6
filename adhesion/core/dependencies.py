from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from adhesion.db.base import get_db
from adhesion.models.member import Member
from adhesion.core.audit import RequestContext
from adhesion.core.errors import OperationForbidden, PasswordChangeRequired
from adhesion.core.security import decode_access_token
from adhesion.services.rbac import Operation, can_perform
import uuid

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_member(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Member:
    """Get current authenticated member from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    member_id_str: str = payload.get("sub")
    if member_id_str is None:
        raise credentials_exception

    # Convert string UUID to UUID object
    try:
        member_id = uuid.UUID(member_id_str)
    except (ValueError, TypeError):
        raise credentials_exception

    member = db.query(Member).filter(Member.id == member_id).first()
    if member is None:
        raise credentials_exception

    if not member.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Member account is deactivated"
        )

    return member


async def get_current_active_member(
    current_member: Member = Depends(get_current_member)
) -> Member:
    """Get current member once the temporary password has been replaced."""
    if current_member.must_change_password:
        raise PasswordChangeRequired()
    return current_member


def require_operation(operation: Operation):
    """Dependency factory checking the role policy table for one operation."""
    async def policy_checker(
        current_member: Member = Depends(get_current_active_member)
    ) -> Member:
        if not can_perform(current_member, operation):
            raise OperationForbidden(
                message=f"Your role cannot perform {operation.value}.",
                context={"operation": operation.value, "role": current_member.role.value},
            )
        return current_member
    return policy_checker


def get_request_context(request: Request) -> RequestContext:
    """Client IP and user agent for the audit trail."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
