import hashlib
import logging
import re
import secrets
import unicodedata
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adhesion.core.audit import RequestContext, record_audit
from adhesion.core.config import settings
from adhesion.core.email import send_password_reset_email
from adhesion.core.errors import InvalidCredentials, InvalidResetToken, ReferenceAllocationFailed, ValidationFailed
from adhesion.core.security import verify_password, get_password_hash, create_access_token
from adhesion.models.member import Member

logger = logging.getLogger(__name__)

_UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
_LOWER = "abcdefghijkmnpqrstuvwxyz"
_DIGITS = "23456789"
_PASSWORD_ALPHABET = _UPPER + _LOWER + _DIGITS


def _ascii_letters(value: str) -> str:
    folded = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z]", "", folded.lower())


def username_exists(db: Session, username: str) -> bool:
    return db.query(Member.id).filter(Member.username == username).first() is not None


def generate_username(db: Session, first_names: str, last_name: str) -> str:
    """Build first8.last8 from the names, suffixing 1, 2, ... until unused."""
    base = f"{_ascii_letters(first_names)[:8]}.{_ascii_letters(last_name)[:8]}"
    username = base
    counter = 1
    while username_exists(db, username):
        username = f"{base}{counter}"
        counter += 1
    return username


def assign_username(db: Session, member: Member) -> str:
    """Give the member the first free login identifier for their name.

    The identifier is written inside a savepoint. If a concurrent request
    claimed the same one first, the unique index rejects it and the next
    suffix is tried.
    """
    attempts = settings.REFERENCE_ALLOCATION_ATTEMPTS
    for attempt in range(1, attempts + 1):
        username = generate_username(db, member.first_names, member.last_name)
        try:
            with db.begin_nested():
                member.username = username
                db.flush()
            return username
        except IntegrityError:
            logger.warning(
                "Username %s was taken concurrently (attempt %d/%d), retrying",
                username, attempt, attempts,
            )

    logger.error("Could not assign a username to member %s after %d attempts", member.id, attempts)
    raise ReferenceAllocationFailed(
        message="Could not allocate a unique login identifier.",
        context={"family": "username", "attempts": attempts},
    )


def generate_temporary_password(length: Optional[int] = None) -> str:
    """Random password with at least one upper case letter, one lower case letter and one digit.

    Look-alike characters (I, l, O, o, 0, 1) are never used.
    """
    length = length or settings.TEMPORARY_PASSWORD_LENGTH
    chars = [secrets.choice(_UPPER), secrets.choice(_LOWER), secrets.choice(_DIGITS)]
    chars += [secrets.choice(_PASSWORD_ALPHABET) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def authenticate_member(db: Session, username: str, password: str) -> Member:
    """
    Authenticate a member by login identifier and password.

    Args:
        db: Database session
        username: Login identifier issued by the secretariat
        password: Plain text password

    Returns:
        The member, with last_login_at updated

    Raises:
        InvalidCredentials: unknown identifier, wrong password or deactivated account
    """
    member = db.query(Member).filter(Member.username == username.strip().lower()).first()
    if not member or not member.password_hash:
        logger.debug("Unknown login identifier: %s", username)
        raise InvalidCredentials()

    if not verify_password(password, member.password_hash):
        logger.debug("Password verification failed for %s", username)
        raise InvalidCredentials()

    if not member.is_active:
        logger.info("Login refused for deactivated account %s", username)
        raise InvalidCredentials(
            message="This account has been deactivated.",
            hints=["Contact the secretariat."],
        )

    member.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(member)
    return member


def change_password(db: Session, member: Member, current_password: str, new_password: str) -> Member:
    """Replace the password and clear the must-change flag."""
    if not verify_password(current_password, member.password_hash):
        raise InvalidCredentials(message="Current password is incorrect.")
    if len(new_password) < 8:
        raise ValidationFailed(
            message="The new password must be at least 8 characters long.",
            context={"field": "new_password"},
        )
    if new_password == current_password:
        raise ValidationFailed(
            message="The new password must differ from the current one.",
            context={"field": "new_password"},
        )

    member.password_hash = get_password_hash(new_password)
    member.must_change_password = False
    db.commit()
    db.refresh(member)
    logger.info("Password changed for member %s", member.id)
    return member


def create_access_token_for_member(member: Member) -> str:
    """Create access token for a member."""
    return create_access_token(data={
        "sub": str(member.id),
        "role": member.role.value,
        "must_change_password": bool(member.must_change_password),
    })


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def request_password_reset(
    db: Session,
    email: str,
    context: Optional[RequestContext] = None,
) -> Optional[str]:
    """
    Start a password reset for the account registered with this email.

    Only a SHA-256 digest of the token is stored. The link is emailed after
    commit. Unknown emails, deactivated accounts and members without login
    identifiers get no token, and the caller answers the same way in every
    case.

    Returns:
        The raw reset token, or None when no eligible account matches
    """
    member = db.query(Member).filter(
        func.lower(Member.email) == email.strip().lower()
    ).first()
    if member is None or not member.username or not member.is_active:
        logger.info("Password reset requested for an unknown or ineligible email")
        return None

    token = secrets.token_urlsafe(32)
    try:
        member.password_reset_token = _hash_reset_token(token)
        member.password_reset_expires = datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        record_audit(db, "PASSWORD_RESET_REQUESTED", actor=member, member_id=member.id, context=context)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Password reset token issued for member %s", member.id)
    reset_link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    send_password_reset_email(member.email, member.first_names, reset_link)
    return token


def reset_password(
    db: Session,
    token: str,
    new_password: str,
    context: Optional[RequestContext] = None,
) -> Member:
    """Set a new password with a reset token. The token works once."""
    if len(new_password) < 8:
        raise ValidationFailed(
            message="The new password must be at least 8 characters long.",
            context={"field": "new_password"},
        )

    try:
        member = db.query(Member).filter(
            Member.password_reset_token == _hash_reset_token(token)
        ).with_for_update().first()
        if (
            member is None
            or member.password_reset_expires is None
            or member.password_reset_expires < datetime.utcnow()
            or not member.is_active
        ):
            raise InvalidResetToken()

        member.password_hash = get_password_hash(new_password)
        member.must_change_password = False
        member.password_reset_token = None
        member.password_reset_expires = None
        record_audit(db, "PASSWORD_RESET", actor=member, member_id=member.id, context=context)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(member)
    logger.info("Password reset completed for member %s", member.id)
    return member
