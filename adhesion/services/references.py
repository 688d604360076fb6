"""
Sequential reference numbers.

Each reference family (membership references, form codes per role tag and
year, amendment references per year) owns one row in reference_counter.
Allocation increments that row with a single UPDATE, which holds the row
lock until the caller's transaction ends, so two concurrent requests can
never read the same value. A family's row is created on first use and
seeded from the highest reference already stored, which keeps numbering
continuous for data created before the counter existed.
"""
import logging
import re
from typing import Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adhesion.core.config import settings
from adhesion.core.errors import ReferenceAllocationFailed
from adhesion.models.amendment import Amendment
from adhesion.models.member import Member, MemberRole, ROLE_TAGS
from adhesion.models.system import ReferenceCounter

logger = logging.getLogger(__name__)

MEMBERSHIP_FAMILY = "membership_reference"

_MEMBERSHIP_PATTERN = re.compile(r"^(\d+)/")
_FORM_CODE_PATTERN = re.compile(r"^N°(\d+)/")
_AMENDMENT_PATTERN = re.compile(r"-(\d+)$")


def highest_sequence(values: Iterable[Optional[str]], pattern: re.Pattern) -> int:
    """Largest numeric sequence found in existing references, 0 if none."""
    highest = 0
    for value in values:
        if not value:
            continue
        match = pattern.search(value)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def allocate(db: Session, family: str, seed: Optional[Callable[[], int]] = None) -> int:
    """Return the next value of a counter family inside the current transaction."""
    attempts = settings.REFERENCE_ALLOCATION_ATTEMPTS
    for attempt in range(1, attempts + 1):
        result = db.execute(
            update(ReferenceCounter)
            .where(ReferenceCounter.family == family)
            .values(last_value=ReferenceCounter.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return db.execute(
                select(ReferenceCounter.last_value).where(ReferenceCounter.family == family)
            ).scalar_one()

        # First use of this family
        start = seed() if seed is not None else 0
        try:
            with db.begin_nested():
                db.add(ReferenceCounter(family=family, last_value=start + 1))
            return start + 1
        except IntegrityError:
            logger.warning(
                "Counter %s was created concurrently (attempt %d/%d), retrying",
                family, attempt, attempts,
            )

    logger.error("Could not allocate a value for counter %s after %d attempts", family, attempts)
    raise ReferenceAllocationFailed(context={"family": family, "attempts": attempts})


def format_membership_reference(sequence: int, role_tag: str) -> str:
    return f"{sequence:04d}/{settings.ASSOCIATION_CODE}/{role_tag}"


def format_form_code(sequence: int, role_tag: str, year: int) -> str:
    return f"N°{sequence:03d}/{settings.ASSOCIATION_CODE}/{role_tag}/{year}"


def format_amendment_reference(sequence: int, year: int) -> str:
    return f"AMD-{year}-{sequence:03d}"


def next_membership_reference(db: Session, role: MemberRole = MemberRole.MEMBER) -> str:
    """Allocate a membership reference. One sequence covers all members."""
    def seed() -> int:
        rows = db.query(Member.membership_reference).all()
        return highest_sequence((row[0] for row in rows), _MEMBERSHIP_PATTERN)

    sequence = allocate(db, MEMBERSHIP_FAMILY, seed)
    return format_membership_reference(sequence, ROLE_TAGS[role])


def next_form_code(db: Session, role: MemberRole, year: int) -> str:
    """Allocate a card code, numbered per role tag and calendar year."""
    role_tag = ROLE_TAGS[role]
    suffix = f"/{settings.ASSOCIATION_CODE}/{role_tag}/{year}"

    def seed() -> int:
        rows = db.query(Member.form_code).filter(Member.form_code.like(f"%{suffix}")).all()
        return highest_sequence((row[0] for row in rows), _FORM_CODE_PATTERN)

    sequence = allocate(db, f"form_code:{role_tag}:{year}", seed)
    return format_form_code(sequence, role_tag, year)


def next_amendment_reference(db: Session, year: int) -> str:
    """Allocate an amendment reference, numbered per calendar year."""
    def seed() -> int:
        rows = db.query(Amendment.reference_number).filter(
            Amendment.reference_number.like(f"AMD-{year}-%")
        ).all()
        return highest_sequence((row[0] for row in rows), _AMENDMENT_PATTERN)

    sequence = allocate(db, f"amendment:{year}", seed)
    return format_amendment_reference(sequence, year)
