"""
Pytest configuration for the membership API.

Every test gets a fresh in-memory SQLite database. Settings are initialised
from the environment at import time, so the minimal environment is set
before anything from the adhesion package is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing-0123456789")
os.environ["AUDIT_LOG_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from adhesion.db.base import Base, get_db
from adhesion.core.security import get_password_hash
from adhesion.main import app
from adhesion.models import Member, MemberRole, MemberStatus
from adhesion.services.auth import create_access_token_for_member
from adhesion.services import member as member_service

OPERATOR_PASSWORD = "Operator2024"
DOCUMENT_URL = "https://files.example.org/forms/signed-form.pdf"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_profile(**overrides):
    """Valid profile values in snapshot form."""
    profile = {
        "first_names": "Amina",
        "last_name": "SAID",
        "birth_date": "15-04-1990",
        "birth_place": "Moroni",
        "phone": "+2693212345",
        "email": "amina.said@example.org",
        "address": "12 rue de la Paix, Marseille",
        "profession": "Nurse",
        "city_of_residence": "Marseille",
        "arrival_date": "01-09-2015",
        "employer_or_school": "Lycee Saint-Charles",
        "id_document_type": "consular_card",
        "id_number": "KM123456",
        "id_issue_date": "10-01-2020",
        "children_count": 2,
    }
    profile.update(overrides)
    return profile


def make_operator(db, role, first_names, last_name, phone, username, reference):
    operator = Member(
        membership_reference=reference,
        role=role,
        status=MemberStatus.PENDING,
        first_names=first_names,
        last_name=last_name,
        phone=phone,
        username=username,
        password_hash=get_password_hash(OPERATOR_PASSWORD),
        must_change_password=False,
        has_paid=True,
        has_submitted_form=False,
    )
    db.add(operator)
    db.commit()
    db.refresh(operator)
    return operator


@pytest.fixture
def operator(db):
    return make_operator(db, MemberRole.SECRETARY, "Fatima", "ALI", "+33600000001", "fatima.ali", "OP-SG-001")


@pytest.fixture
def president(db):
    return make_operator(db, MemberRole.PRESIDENT, "Ahmed", "MOHAMED", "+33600000002", "ahmed.mohamed", "OP-P-001")


@pytest.fixture
def applicant(db):
    """A member created through the public application."""
    profile = make_profile()
    return member_service.submit_application(db, profile, DOCUMENT_URL)


@pytest.fixture
def approved_member(db, applicant, operator):
    return member_service.approve_member(db, applicant.id, operator.id, comment="ok")


def auth_headers(member):
    return {"Authorization": f"Bearer {create_access_token_for_member(member)}"}
