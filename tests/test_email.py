"""
Notification email tests.
"""
import pytest

from adhesion.core import email


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def capture(to_email, subject, plain_text, html_text):
        sent.append({"to": to_email, "subject": subject, "plain": plain_text, "html": html_text})

    monkeypatch.setattr(email, "_send_email", capture)
    return sent


def test_rejection_email_escapes_operator_text(outbox):
    email.send_rejection_email(
        "amina.said@example.org",
        "Amina",
        "<script>alert(1)</script> photo missing",
        suggestions='Add a <a href="https://evil.example">photo</a>',
    )

    html = outbox[0]["html"]
    assert "&lt;script&gt;alert(1)&lt;/script&gt; photo missing" in html
    assert "<script>" not in html
    assert '<a href="https://evil.example">' not in html
    assert "<script>alert(1)</script>" in outbox[0]["plain"]


def test_amendment_rejection_email_escapes_reason(outbox):
    email.send_amendment_decision_email(
        "amina.said@example.org", "<b>Amina</b>", "AMD-2026-001", approved=False, reason="Proof <img src=x> unreadable"
    )

    html = outbox[0]["html"]
    assert "Proof &lt;img src=x&gt; unreadable" in html
    assert "&lt;b&gt;Amina&lt;/b&gt;" in html
    assert "<img" not in html


def test_email_without_address_is_skipped(outbox):
    email.send_deactivation_email(None, "Amina", "Left the association")

    assert outbox == []
