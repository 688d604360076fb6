"""
End-to-end API tests through the FastAPI test client.

Data is created through the API, or through short-lived sessions closed
before the first request, so requests never share an open transaction.
"""
import re

import pytest

from adhesion.models import MemberRole

from conftest import DOCUMENT_URL, OPERATOR_PASSWORD, make_operator, make_profile


@pytest.fixture
def secretary(session_factory):
    session = session_factory()
    try:
        return make_operator(
            session, MemberRole.SECRETARY, "Fatima", "ALI", "+33600000001", "fatima.ali", "OP-SG-001"
        )
    finally:
        session.close()


@pytest.fixture
def secretary_headers(client, secretary):
    return _login(client, secretary.username, OPERATOR_PASSWORD)


def _login(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _apply(client, **overrides):
    payload = make_profile(**overrides)
    payload["document_url"] = DOCUMENT_URL
    response = client.post("/api/public/applications", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _error_code(response):
    return response.json()["error"]["code"]


@pytest.fixture
def approved(client, secretary_headers):
    application = _apply(client)
    member_id = application["member"]["id"]
    response = client.post(
        f"/api/secretary/members/{member_id}/approve", json={"comment": "ok"}, headers=secretary_headers
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def member_headers(client, approved, secretary_headers):
    """Approved member who has replaced the temporary password."""
    response = client.post(
        f"/api/secretary/members/{approved['id']}/identifier",
        json={"confirmed_paid": True},
        headers=secretary_headers,
    )
    assert response.status_code == 200, response.text
    credentials = response.json()
    headers = _login(client, credentials["username"], credentials["temporary_password"])
    response = client.post(
        "/api/auth/change-password",
        json={"current_password": credentials["temporary_password"], "new_password": "NewSecret2024"},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["services"]["api"] == "ok"


def test_public_application_and_status_lookup(client):
    application = _apply(client)

    assert application["reference"] == "0001/AGCO/M"
    assert application["member"]["status"] == "pending"
    assert application["member"]["has_submitted_form"] is True
    assert application["member"]["form_code"] is None

    response = client.get(
        "/api/public/applications/status",
        params={"phone": "+2693212345", "reference": "0001/AGCO/M"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"
    assert body["submitted"] is True
    assert body["has_credentials"] is False


def test_status_lookup_with_wrong_reference(client):
    _apply(client)

    response = client.get(
        "/api/public/applications/status",
        params={"phone": "+2693212345", "reference": "0099/AGCO/M"},
    )

    assert response.status_code == 404
    assert _error_code(response) == "APPLICATION_NOT_FOUND"


def test_invalid_application_uses_error_envelope(client):
    payload = make_profile(birth_date="1990-04-15")
    payload["document_url"] = DOCUMENT_URL

    response = client.post("/api/public/applications", json=payload)

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "birth_date" in [field["field"] for field in error["context"]["fields"]]


def test_duplicate_application_conflict(client):
    _apply(client)
    payload = make_profile()
    payload["document_url"] = DOCUMENT_URL

    response = client.post("/api/public/applications", json=payload)

    assert response.status_code == 409
    assert _error_code(response) == "ALREADY_PENDING_REVIEW"


def test_login_with_wrong_password(client, secretary):
    response = client.post("/api/auth/login", json={"username": secretary.username, "password": "wrong-password"})

    assert response.status_code == 401
    assert _error_code(response) == "INVALID_CREDENTIALS"


def test_secretary_endpoints_require_a_token(client):
    response = client.get("/api/secretary/dashboard")

    assert response.status_code == 401


def test_approve_through_api(client, approved, secretary_headers):
    assert approved["status"] == "approved"
    assert re.match(r"^N°\d{3}/AGCO/M/\d{4}$", approved["form_code"])
    assert approved["card_issued_at"] is not None

    response = client.post(
        f"/api/secretary/members/{approved['id']}/approve", json={}, headers=secretary_headers
    )
    assert response.status_code == 409
    assert _error_code(response) == "ALREADY_APPROVED"


def test_reject_and_rejection_details(client, secretary_headers):
    application = _apply(client)
    member_id = application["member"]["id"]

    response = client.post(
        f"/api/secretary/members/{member_id}/reject", json={"reason": "short"}, headers=secretary_headers
    )
    assert response.status_code == 400
    assert _error_code(response) == "VALIDATION_ERROR"

    response = client.post(
        f"/api/secretary/members/{member_id}/reject",
        json={"reason": "incomplete documents", "category": "missing_documents"},
        headers=secretary_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    response = client.get("/api/public/applications/rejection", params={"phone": "+2693212345"})
    assert response.status_code == 200
    body = response.json()
    assert body["reason"] == "incomplete documents"
    assert body["category"] == "missing_documents"
    assert body["can_resubmit"] is True

    resubmitted = _apply(client, address="14 boulevard National, Marseille")
    assert resubmitted["member"]["id"] == member_id
    assert resubmitted["member"]["status"] == "pending"
    assert resubmitted["member"]["rejection_reason"] is None


def test_temporary_password_must_be_changed(client, approved, secretary_headers):
    response = client.post(
        f"/api/secretary/members/{approved['id']}/identifier",
        json={"confirmed_paid": True},
        headers=secretary_headers,
    )
    assert response.status_code == 200
    credentials = response.json()
    assert credentials["username"] == "amina.said"
    assert credentials["member"]["must_change_password"] is True
    assert credentials["member"]["status"] == "approved"

    login = client.post(
        "/api/auth/login",
        json={"username": credentials["username"], "password": credentials["temporary_password"]},
    )
    assert login.json()["must_change_password"] is True
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    response = client.get("/api/member/form", headers=headers)
    assert response.status_code == 403
    assert _error_code(response) == "PASSWORD_CHANGE_REQUIRED"

    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["must_change_password"] is True

    response = client.post(
        "/api/auth/change-password",
        json={"current_password": credentials["temporary_password"], "new_password": "NewSecret2024"},
        headers=headers,
    )
    assert response.status_code == 200

    response = client.get("/api/member/form", headers=headers)
    assert response.status_code == 200
    assert response.json()["form"]["version"] == 1


def test_issue_identifier_requires_payment_confirmation(client, approved, secretary_headers):
    response = client.post(
        f"/api/secretary/members/{approved['id']}/identifier",
        json={"confirmed_paid": False},
        headers=secretary_headers,
    )

    assert response.status_code == 409
    assert _error_code(response) == "PAYMENT_NOT_CONFIRMED"


def test_member_cannot_call_secretary_endpoints(client, member_headers):
    response = client.get("/api/secretary/dashboard", headers=member_headers)

    assert response.status_code == 403
    assert _error_code(response) == "OPERATION_FORBIDDEN"


def test_amendment_submit_and_approve(client, member_headers, secretary_headers):
    response = client.post(
        "/api/member/amendments",
        json={
            "changes": {"address": "7 avenue du Prado, Marseille", "phone": ""},
            "justification": "I moved to a new flat last month",
        },
        headers=member_headers,
    )
    assert response.status_code == 201, response.text
    amendment = response.json()["amendment"]
    assert amendment["status"] == "pending"
    assert amendment["changed_fields"] == ["address"]
    assert "reviewed_at" not in amendment

    response = client.post(
        "/api/member/amendments",
        json={"changes": {"profession": "Engineer"}, "justification": "I changed jobs this year"},
        headers=member_headers,
    )
    assert response.status_code == 409
    assert _error_code(response) == "AMENDMENT_ALREADY_PENDING"

    response = client.get("/api/secretary/amendments", headers=secretary_headers)
    assert response.json()["total"] == 1
    assert response.json()["amendments"][0]["member_name"] == "Amina SAID"

    response = client.post(
        f"/api/secretary/amendments/{amendment['id']}/decision",
        json={"decision": "approve", "comment": "Proof received"},
        headers=secretary_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = client.get("/api/member/form", headers=member_headers)
    assert response.json()["member"]["status"] == "approved"

    response = client.get("/api/member/amendments", headers=member_headers)
    history = response.json()
    assert history["statistics"]["approved"] == 1
    assert history["amendments"][0]["reviewer_comment"] == "Proof received"


def test_amendment_rejects_unknown_fields(client, member_headers):
    response = client.post(
        "/api/member/amendments",
        json={"changes": {"status": "approved"}, "justification": "Please approve me now"},
        headers=member_headers,
    )

    assert response.status_code == 422


def test_provision_member_with_payment(client, secretary_headers):
    response = client.post(
        "/api/secretary/members",
        json={"first_names": "Karim", "last_name": "ABDOU", "phone": "+269 330 0001", "has_paid": True},
        headers=secretary_headers,
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["member"]["phone"] == "+2693300001"
    assert body["credentials"]["username"] == "karim.abdou"
    assert body["member"]["has_submitted_form"] is False


def test_dashboard_and_directory(client, approved, secretary_headers):
    response = client.get("/api/secretary/dashboard", headers=secretary_headers)
    assert response.status_code == 200
    assert response.json()["approved"] == 1

    response = client.get("/api/public/directory")
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    entry = body["members"][0]
    assert entry["last_name"] == "SAID"
    assert "phone" not in entry
    assert "email" not in entry


def test_member_detail_includes_history(client, approved, secretary_headers):
    response = client.get(f"/api/secretary/members/{approved['id']}", headers=secretary_headers)

    assert response.status_code == 200
    body = response.json()
    assert [form["version"] for form in body["forms"]] == [1]
    assert sorted(entry["new_status"] for entry in body["status_history"]) == ["approved", "pending"]


def test_member_card(client, approved, member_headers):
    response = client.get("/api/member/card", headers=member_headers)

    assert response.status_code == 200, response.text
    card = response.json()["card"]
    assert card["membership_reference"] == "0001/AGCO/M"
    assert card["full_name"] == "Amina SAID"
    assert card["form_code"] == approved["form_code"]
    assert card["president_signature_url"] is None


def test_official_documents_flow(client, secretary_headers, member_headers):
    response = client.post(
        "/api/documents/categories",
        json={"name": "Statuts", "description": "Founding texts"},
        headers=secretary_headers,
    )
    assert response.status_code == 201, response.text
    category = response.json()

    response = client.post(
        "/api/documents",
        json={
            "title": "Statuts de l'association",
            "category_id": category["id"],
            "file_url": "https://files.example.org/documents/statuts.pdf",
            "file_id": "documents/statuts",
            "file_size": 120000,
            "original_filename": "statuts.pdf",
        },
        headers=secretary_headers,
    )
    assert response.status_code == 201, response.text
    document = response.json()
    assert document["category_name"] == "Statuts"
    assert document["uploaded_by"] == "Fatima ALI"

    response = client.get("/api/documents", headers=member_headers)
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [document["id"]]

    response = client.get(f"/api/documents/categories/{category['id']}", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["category"]["document_count"] == 1

    response = client.delete(f"/api/documents/categories/{category['id']}", headers=secretary_headers)
    assert response.status_code == 409
    assert _error_code(response) == "CATEGORY_HAS_DOCUMENTS"

    response = client.delete(f"/api/documents/{document['id']}", headers=secretary_headers)
    assert response.status_code == 200
    response = client.get("/api/documents", headers=member_headers)
    assert response.json()["total"] == 0


def test_members_cannot_manage_documents(client, member_headers):
    response = client.post("/api/documents/categories", json={"name": "Statuts"}, headers=member_headers)

    assert response.status_code == 403
    assert _error_code(response) == "OPERATION_FORBIDDEN"


def test_document_upload_accepts_pdf_only(client, secretary_headers):
    category = client.post(
        "/api/documents/categories", json={"name": "Statuts"}, headers=secretary_headers
    ).json()

    response = client.post(
        "/api/documents",
        json={
            "title": "Statuts de l'association",
            "category_id": category["id"],
            "file_url": "https://files.example.org/documents/statuts.docx",
            "file_id": "documents/statuts",
            "original_filename": "statuts.docx",
        },
        headers=secretary_headers,
    )

    assert response.status_code == 422
    assert _error_code(response) == "VALIDATION_ERROR"


def test_forgot_password_answers_the_same_for_unknown_emails(client):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.org"})

    assert response.status_code == 200
    assert response.json()["message"] == "If that email is registered, a reset link has been sent."


def test_reset_password_with_invalid_token(client):
    response = client.post(
        "/api/auth/reset-password", json={"token": "not-a-token", "new_password": "BrandNew2024"}
    )

    assert response.status_code == 400
    assert _error_code(response) == "INVALID_RESET_TOKEN"
