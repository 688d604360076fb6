import smtplib
import logging
from html import escape
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from adhesion.core.config import settings

logger = logging.getLogger(__name__)


def _send_email(to_email: str, subject: str, plain_text: str, html_text: str) -> None:
    """Low-level helper to send one email via SMTP."""
    if not all([settings.SMTP_HOST, settings.SMTP_USER, settings.SMTP_PASSWORD, settings.FROM_EMAIL]):
        logger.warning("SMTP not fully configured; skipping email to %s.", to_email)
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.FROM_EMAIL
    msg["To"] = to_email
    if settings.REPLY_TO_EMAIL:
        msg["Reply-To"] = settings.REPLY_TO_EMAIL

    msg.attach(MIMEText(plain_text, "plain"))
    msg.attach(MIMEText(html_text, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT or 587) as server:
        server.ehlo()
        server.starttls()
        server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.sendmail(settings.FROM_EMAIL, to_email, msg.as_string())


def _wrap_html(title: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; color: #1e3a5f; background: #f0f4ff; padding: 24px;">
      <div style="max-width: 520px; margin: 0 auto; background: #ffffff; border-radius: 12px;
                  border: 2px solid #bfdbfe; padding: 32px;">
        <h2 style="color: #1d4ed8; margin-bottom: 8px;">{title}</h2>
        {body}
        <p style="font-size: 12px; color: #94a3b8; margin-top: 24px;">{settings.ASSOCIATION_NAME}</p>
      </div>
    </body>
    </html>
    """


def _notify(to_email: Optional[str], subject: str, plain_text: str, html_text: str, kind: str) -> None:
    """Send a notification, logging instead of raising on failure."""
    if not to_email:
        logger.info("No email address on file; skipping %s notification.", kind)
        return
    try:
        _send_email(to_email, subject, plain_text, html_text)
        logger.info("%s email sent to %s", kind, to_email)
    except Exception:
        logger.exception("Failed to send %s email to %s", kind, to_email)


def send_approval_email(to_email: Optional[str], first_name: str, form_code: str) -> None:
    """Tell a member their membership form was approved."""
    subject = "Your membership has been approved"
    plain_text = (
        f"Hello {first_name},\n\n"
        f"Your membership form has been approved. Your membership card number is {form_code}.\n\n"
        f"You can view your card at {settings.FRONTEND_URL}.\n\n"
        f"{settings.ASSOCIATION_NAME}"
    )
    html_text = _wrap_html(
        "Membership approved",
        f"<p>Hello {escape(first_name or '')},</p>"
        f"<p>Your membership form has been approved. Your membership card number is "
        f"<strong>{form_code}</strong>.</p>"
        f'<p><a href="{settings.FRONTEND_URL}" style="color: #2563eb;">Open my member area</a></p>',
    )
    _notify(to_email, subject, plain_text, html_text, "approval")


def send_rejection_email(
    to_email: Optional[str],
    first_name: str,
    reason: str,
    suggestions: Optional[str] = None,
) -> None:
    """Tell a member their form was rejected and how to resubmit."""
    subject = "Your membership form needs changes"
    suggestion_text = f"\nSuggestions: {suggestions}\n" if suggestions else ""
    plain_text = (
        f"Hello {first_name},\n\n"
        f"Your membership form was not approved for the following reason:\n{reason}\n"
        f"{suggestion_text}\n"
        f"You can correct your form and submit it again at {settings.FRONTEND_URL}.\n\n"
        f"{settings.ASSOCIATION_NAME}"
    )
    suggestion_html = f"<p><strong>Suggestions:</strong> {escape(suggestions)}</p>" if suggestions else ""
    html_text = _wrap_html(
        "Membership form rejected",
        f"<p>Hello {escape(first_name or '')},</p>"
        f"<p>Your membership form was not approved for the following reason:</p>"
        f"<blockquote>{escape(reason)}</blockquote>{suggestion_html}"
        f"<p>You can correct your form and submit it again.</p>",
    )
    _notify(to_email, subject, plain_text, html_text, "rejection")


def send_deactivation_email(to_email: Optional[str], first_name: str, reason: str) -> None:
    subject = "Your member account has been deactivated"
    plain_text = (
        f"Hello {first_name},\n\n"
        f"Your member account has been deactivated.\nReason: {reason}\n\n"
        f"Contact the secretariat if you believe this is a mistake.\n\n"
        f"{settings.ASSOCIATION_NAME}"
    )
    html_text = _wrap_html(
        "Account deactivated",
        f"<p>Hello {escape(first_name or '')},</p>"
        f"<p>Your member account has been deactivated.</p><p><strong>Reason:</strong> {escape(reason)}</p>",
    )
    _notify(to_email, subject, plain_text, html_text, "deactivation")


def send_amendment_decision_email(
    to_email: Optional[str],
    first_name: str,
    reference_number: str,
    approved: bool,
    reason: Optional[str] = None,
) -> None:
    """Tell a member the outcome of their amendment request."""
    verdict = "approved" if approved else "rejected"
    subject = f"Amendment {reference_number} {verdict}"
    reason_text = f"\nReason: {reason}\n" if reason else ""
    plain_text = (
        f"Hello {first_name},\n\n"
        f"Your profile amendment request {reference_number} has been {verdict}.\n"
        f"{reason_text}\n"
        f"{settings.ASSOCIATION_NAME}"
    )
    reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    html_text = _wrap_html(
        f"Amendment {verdict}",
        f"<p>Hello {escape(first_name or '')},</p>"
        f"<p>Your profile amendment request <strong>{reference_number}</strong> has been {verdict}.</p>"
        f"{reason_html}",
    )
    _notify(to_email, subject, plain_text, html_text, "amendment decision")


def send_password_reset_email(to_email: Optional[str], first_name: str, reset_link: str) -> None:
    """Send the password reset link."""
    minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    subject = "Reset your member area password"
    plain_text = (
        f"Hello {first_name},\n\n"
        f"We received a request to reset the password of your member area.\n\n"
        f"Open the link below to choose a new password (valid for {minutes} minutes):\n\n"
        f"{reset_link}\n\n"
        f"If you did not request a password reset, you can safely ignore this email.\n\n"
        f"{settings.ASSOCIATION_NAME}"
    )
    html_text = _wrap_html(
        "Password reset request",
        f"<p>Hello {escape(first_name or '')},</p>"
        f"<p>We received a request to reset the password of your member area.</p>"
        f'<p style="margin: 24px 0;"><a href="{reset_link}" style="background: #2563eb; color: #ffffff; '
        f'padding: 12px 24px; border-radius: 8px; text-decoration: none; font-weight: bold;">Reset my password</a></p>'
        f'<p style="font-size: 13px; color: #64748b;">This link expires in <strong>{minutes} minutes</strong>. '
        f"If you did not request a password reset, you can safely ignore this email.</p>",
    )
    _notify(to_email, subject, plain_text, html_text, "password reset")
