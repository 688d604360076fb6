import hashlib
from datetime import datetime, timedelta

import pytest

from adhesion.core.errors import InvalidCredentials, InvalidResetToken, ValidationFailed
from adhesion.core.security import decode_access_token
from adhesion.services import auth as auth_service
from adhesion.services import member as member_service

from conftest import OPERATOR_PASSWORD


def test_generate_username_folds_accents(db):
    assert auth_service.generate_username(db, "Zaïnaba Hadidja", "M'Madi") == "zainabah.mmadi"


def test_temporary_password_mixes_character_classes():
    for _ in range(20):
        password = auth_service.generate_temporary_password()
        assert len(password) == 8
        assert any(c.isupper() for c in password)
        assert any(c.islower() for c in password)
        assert any(c.isdigit() for c in password)
        assert not set(password) & set("IlOo01")


def test_authenticate_operator(db, operator):
    member = auth_service.authenticate_member(db, "Fatima.Ali ", OPERATOR_PASSWORD)

    assert member.id == operator.id
    assert member.last_login_at is not None


def test_authenticate_with_wrong_password(db, operator):
    with pytest.raises(InvalidCredentials):
        auth_service.authenticate_member(db, "fatima.ali", "not-the-password")


def test_deactivated_member_cannot_log_in(db, operator):
    member, issued = member_service.provision_member(
        db, operator.id, "Karim", "ABDOU", "+2693300001", has_paid=True
    )
    member_service.deactivate_member(db, member.id, operator.id, "Left the association")

    with pytest.raises(InvalidCredentials):
        auth_service.authenticate_member(db, issued.username, issued.temporary_password)


def test_change_password_clears_flag(db, operator):
    member, issued = member_service.provision_member(
        db, operator.id, "Karim", "ABDOU", "+2693300001", has_paid=True
    )

    member = auth_service.change_password(db, member, issued.temporary_password, "NewSecret2024")

    assert member.must_change_password is False
    assert auth_service.authenticate_member(db, issued.username, "NewSecret2024").id == member.id


def test_change_password_rejects_reuse(db, operator):
    member, issued = member_service.provision_member(
        db, operator.id, "Karim", "ABDOU", "+2693300001", has_paid=True
    )

    with pytest.raises(ValidationFailed):
        auth_service.change_password(db, member, issued.temporary_password, issued.temporary_password)


def test_token_claims(operator):
    payload = decode_access_token(auth_service.create_access_token_for_member(operator))

    assert payload["sub"] == str(operator.id)
    assert payload["role"] == "secretary"
    assert payload["must_change_password"] is False


def _member_with_credentials(db, operator):
    member, issued = member_service.provision_member(
        db, operator.id, "Karim", "ABDOU", "+2693300001", email="karim.abdou@example.org", has_paid=True
    )
    return member, issued


def test_password_reset_flow(db, operator):
    member, issued = _member_with_credentials(db, operator)

    token = auth_service.request_password_reset(db, "  KARIM.Abdou@example.org")

    db.refresh(member)
    assert token
    assert member.password_reset_token == hashlib.sha256(token.encode()).hexdigest()
    assert member.password_reset_expires > datetime.utcnow()

    auth_service.reset_password(db, token, "BrandNew2024")

    db.refresh(member)
    assert member.password_reset_token is None
    assert member.must_change_password is False
    assert auth_service.authenticate_member(db, issued.username, "BrandNew2024").id == member.id

    with pytest.raises(InvalidResetToken):
        auth_service.reset_password(db, token, "AnotherOne2024")


def test_password_reset_needs_a_member_with_credentials(db, operator):
    member_service.provision_member(
        db, operator.id, "Karim", "ABDOU", "+2693300001", email="karim.abdou@example.org"
    )

    assert auth_service.request_password_reset(db, "karim.abdou@example.org") is None
    assert auth_service.request_password_reset(db, "nobody@example.org") is None


def test_expired_reset_token_is_refused(db, operator):
    member, _ = _member_with_credentials(db, operator)
    token = auth_service.request_password_reset(db, "karim.abdou@example.org")
    member.password_reset_expires = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(InvalidResetToken):
        auth_service.reset_password(db, token, "BrandNew2024")


def test_reset_password_requires_eight_characters(db, operator):
    _member_with_credentials(db, operator)
    token = auth_service.request_password_reset(db, "karim.abdou@example.org")

    with pytest.raises(ValidationFailed):
        auth_service.reset_password(db, token, "short")
