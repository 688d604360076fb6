from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from adhesion.core.errors import DuplicateIdentity
from adhesion.models.member import Member


def ensure_unique_identity(
    db: Session,
    email: Optional[str] = None,
    id_number: Optional[str] = None,
    phone: Optional[str] = None,
    exclude_member_id: Optional[UUID] = None,
) -> None:
    """Raise DuplicateIdentity if another member already holds one of these values.

    Email comparison is case-insensitive. Empty values are not checked.
    """
    checks = []
    if id_number:
        checks.append(("id_number", Member.id_number == id_number.strip().upper()))
    if email:
        checks.append(("email", func.lower(Member.email) == email.strip().lower()))
    if phone:
        checks.append(("phone", Member.phone == phone))

    for field, condition in checks:
        query = db.query(Member.id).filter(condition)
        if exclude_member_id is not None:
            query = query.filter(Member.id != exclude_member_id)
        if query.first() is not None:
            raise DuplicateIdentity(field)
