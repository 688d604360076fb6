"""
Reference counter tests: sequencing, seeding from existing data, retries.
"""
import pytest
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError

from adhesion.core.config import settings
from adhesion.core.errors import ReferenceAllocationFailed
from adhesion.models import Member, MemberRole, ReferenceCounter
from adhesion.services import references


class _FailingSavepoint:
    """Savepoint stand-in that simulates losing the counter insert race."""

    def __init__(self, db, on_exit=None):
        self.db = db
        self.on_exit = on_exit

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        for obj in list(self.db.new):
            self.db.expunge(obj)
        if self.on_exit is not None:
            self.on_exit()
        raise IntegrityError("INSERT INTO reference_counter", {}, Exception("UNIQUE constraint failed"))


def test_membership_references_are_sequential(db):
    first = references.next_membership_reference(db)
    second = references.next_membership_reference(db)
    db.commit()

    assert first == "0001/AGCO/M"
    assert second == "0002/AGCO/M"


def test_membership_sequence_is_shared_across_roles(db):
    member_ref = references.next_membership_reference(db, MemberRole.MEMBER)
    secretary_ref = references.next_membership_reference(db, MemberRole.SECRETARY)
    db.commit()

    assert member_ref == "0001/AGCO/M"
    assert secretary_ref == "0002/AGCO/SG"


def test_counter_is_seeded_from_existing_references(db):
    db.add(Member(
        membership_reference="0041/AGCO/M",
        first_names="Legacy",
        last_name="MEMBER",
        phone="+2693000041",
    ))
    db.commit()

    assert references.next_membership_reference(db) == "0042/AGCO/M"


def test_form_codes_are_numbered_per_role_and_year(db):
    first_member = references.next_form_code(db, MemberRole.MEMBER, 2026)
    second_member = references.next_form_code(db, MemberRole.MEMBER, 2026)
    president = references.next_form_code(db, MemberRole.PRESIDENT, 2026)
    next_year = references.next_form_code(db, MemberRole.MEMBER, 2027)
    db.commit()

    assert first_member == "N°001/AGCO/M/2026"
    assert second_member == "N°002/AGCO/M/2026"
    assert president == "N°001/AGCO/P/2026"
    assert next_year == "N°001/AGCO/M/2027"


def test_amendment_references_restart_each_year(db):
    assert references.next_amendment_reference(db, 2026) == "AMD-2026-001"
    assert references.next_amendment_reference(db, 2026) == "AMD-2026-002"
    assert references.next_amendment_reference(db, 2027) == "AMD-2027-001"


def test_highest_sequence_ignores_foreign_formats():
    values = ["0007/AGCO/M", None, "OP-SG-001", "0012/AGCO/SG", ""]

    assert references.highest_sequence(values, references._MEMBERSHIP_PATTERN) == 12


def test_allocation_retries_when_counter_created_concurrently(db, monkeypatch):
    family = "amendment:2030"

    def competitor_inserts_row():
        db.execute(insert(ReferenceCounter).values(family=family, last_value=5))

    monkeypatch.setattr(db, "begin_nested", lambda: _FailingSavepoint(db, competitor_inserts_row))

    assert references.allocate(db, family) == 6


def test_allocation_gives_up_after_configured_attempts(db, monkeypatch):
    calls = []

    def failing_savepoint():
        calls.append(1)
        return _FailingSavepoint(db)

    monkeypatch.setattr(settings, "REFERENCE_ALLOCATION_ATTEMPTS", 2)
    monkeypatch.setattr(db, "begin_nested", failing_savepoint)

    with pytest.raises(ReferenceAllocationFailed) as excinfo:
        references.allocate(db, "amendment:2031")

    assert len(calls) == 2
    assert excinfo.value.status_code == 503
    assert excinfo.value.context["family"] == "amendment:2031"
