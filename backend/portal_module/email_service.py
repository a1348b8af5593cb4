import html
import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from sqlalchemy.orm import Session

from .config import settings
from .models import EmailLog


logger = logging.getLogger(__name__)


class EmailDispatchError(Exception):
    pass


_FRAME = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #1a5276, #2e86c1); padding: 30px; border-radius: 12px 12px 0 0; text-align: center;">
    <h1 style="color: white; margin: 0; font-size: 24px;">{school}</h1>{tagline}
  </div>
  <div style="background: #ffffff; padding: 30px; border: 1px solid #e0e0e0; border-radius: 0 0 12px 12px;">
{content}
    <hr style="border: none; border-top: 1px solid #e0e0e0; margin: 20px 0;" />
    <p style="color: #888; font-size: 12px; text-align: center;">{footer}</p>
  </div>
</div>
"""


def _frame(content: str, footer: str, tagline: str = "") -> str:
    if tagline:
        tagline = f'\n    <p style="color: rgba(255,255,255,0.8); margin: 5px 0 0; font-size: 14px;">{tagline}</p>'
    return _FRAME.format(school=html.escape(settings.school_name), tagline=tagline, content=content, footer=footer)


def role_label(role: str) -> str:
    return role.replace("_", " ").title()


def render_bulk_email(subject: str, body: str, sender_name: str | None) -> str:
    content = (
        f'    <h2 style="color: #1a5276; margin-top: 0;">{html.escape(subject)}</h2>\n'
        f'    <div style="color: #333; font-size: 16px; line-height: 1.6; white-space: pre-wrap;">{html.escape(body)}</div>'
    )
    footer = (
        f"Sent by {html.escape(sender_name or 'School Administration')} via the school portal.<br/>"
        "This is an automated message. Please do not reply to this email."
    )
    return _frame(content, footer, tagline="Official Communication")


def render_registration_email(
    *, first_name: str, last_name: str, email: str, role: str, auto_approved: bool | None = None
) -> tuple[str, str]:
    """Return ``(subject, html)`` for the sign-up confirmation.

    Admin registrations get the auto-approval template; every other role gets
    the pending-review template. ``auto_approved`` overrides the role-based
    choice when the caller knows the actual registration status.
    """
    if auto_approved is None:
        auto_approved = role == "admin"
    full_name = html.escape(f"{first_name} {last_name}")
    if auto_approved:
        subject = "Admin Registration Confirmed"
        content = f"""    <h2 style="color: #1a5276;">Welcome, {full_name}!</h2>
    <p style="color: #333; font-size: 16px; line-height: 1.6;">
      Your <strong>Administrator</strong> account has been <strong style="color: #27ae60;">automatically approved</strong>.
    </p>
    <p style="color: #333; font-size: 16px; line-height: 1.6;">
      You can now sign in to your Admin Dashboard to manage registrations, approve or reject applications, and oversee school operations.
    </p>
    <div style="background: #f0f9ff; border-left: 4px solid #2e86c1; padding: 15px; margin: 20px 0; border-radius: 4px;">
      <p style="margin: 0; color: #1a5276;"><strong>Next Steps:</strong></p>
      <ul style="color: #333; margin-top: 10px;">
        <li>Sign in with your email and password</li>
        <li>Review and manage pending registrations</li>
        <li>Set up departments and assign staff</li>
      </ul>
    </div>"""
    else:
        subject = "Registration Received"
        content = f"""    <h2 style="color: #1a5276;">Dear {full_name},</h2>
    <p style="color: #333; font-size: 16px; line-height: 1.6;">
      Thank you for registering at <strong>{html.escape(settings.school_name)}</strong>.
    </p>
    <p style="color: #333; font-size: 16px; line-height: 1.6;">
      Your registration has been <strong>successfully received</strong> and is now pending review by our administration team.
    </p>
    <div style="background: #fff3cd; border-left: 4px solid #ffc107; padding: 15px; margin: 20px 0; border-radius: 4px;">
      <p style="margin: 0; color: #856404;"><strong>Please allow up to 48 hours</strong> for your registration to be reviewed and processed.</p>
    </div>
    <div style="background: #f0f9ff; border-left: 4px solid #2e86c1; padding: 15px; margin: 20px 0; border-radius: 4px;">
      <p style="margin: 0; color: #1a5276;"><strong>What happens next:</strong></p>
      <ul style="color: #333; margin-top: 10px;">
        <li>Our admin will review your submitted documents</li>
        <li>You will be notified once your registration is approved or if additional information is needed</li>
        <li>Once approved, you can sign in to access your dashboard</li>
      </ul>
    </div>
    <div style="background: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
      <p style="margin: 0; color: #555; font-size: 14px;">
        <strong>Role:</strong> {html.escape(role_label(role))}<br/>
        <strong>Email:</strong> {html.escape(email)}
      </p>
    </div>"""
    footer = f"This is an automated no-reply message from {html.escape(settings.school_name)}. Please do not reply to this email."
    return subject, _frame(content, footer)


def smtp_configured() -> bool:
    return bool(settings.smtp_username and settings.smtp_password)


def send_html_email(*, recipients: list[str], subject: str, body_html: str) -> bool:
    """Deliver through SMTP. Returns False when SMTP is not configured."""
    if not smtp_configured():
        logger.warning("Email simulation: To=%s, Subject=%s", ", ".join(recipients), subject)
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.smtp_username
    msg["Subject"] = subject
    msg.attach(MIMEText(body_html, "html"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            # Bcc-style delivery: recipients never see each other.
            server.sendmail(settings.smtp_username, recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDispatchError(f"Failed to send email: {exc}") from exc
    return True


def dispatch_email(
    db: Session,
    *,
    recipients: list[str],
    subject: str,
    body_html: str,
    sender_id: str | None = None,
) -> EmailLog:
    """Send an email and write its audit row. Delivery failures are logged, not raised."""
    try:
        status = "sent" if send_html_email(recipients=recipients, subject=subject, body_html=body_html) else "queued"
    except EmailDispatchError as exc:
        logger.error("Email dispatch failed for %d recipient(s): %s", len(recipients), exc)
        status = "failed"

    log = EmailLog(
        recipients=list(recipients),
        subject=subject,
        body=body_html,
        status=status,
        sender_id=sender_id,
        sent_at=datetime.now(timezone.utc) if status == "sent" else None,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log
