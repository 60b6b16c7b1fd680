"""
LexLedger - Email Notifications

Outbound mail goes through SMTP (aiosmtplib). Without SMTP credentials the
message is written to the log instead, which is what development and the
test-suite use.
"""

import logging
import uuid
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional, TYPE_CHECKING

import aiosmtplib

from lexledger.config import Settings
from lexledger.errors import ExternalServiceError

if TYPE_CHECKING:
    from lexledger.models.user import User
    from lexledger.models.client import Client
    from lexledger.models.billing import Invoice
    from lexledger.models.task import Task

logger = logging.getLogger(__name__)


async def send_email(
    config: Settings,
    to_email: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
    attachment: Optional[bytes] = None,
    attachment_filename: Optional[str] = None,
) -> str:
    """
    Send an email, optionally with a PDF attachment.

    Args:
        config: Application settings (SMTP connection details)
        to_email: Recipient email address
        subject: Email subject
        html_content: HTML email body
        text_content: Plain text email body (optional)
        attachment: PDF bytes to attach (optional)
        attachment_filename: Filename to use for the attachment (optional)

    Returns:
        The generated Message-ID

    Raises:
        ExternalServiceError: the SMTP server refused or could not be reached
    """
    message_id = uuid.uuid4().hex

    # Development mode - log instead of sending
    if not config.SMTP_USER or not config.SMTP_PASSWORD:
        logger.info(
            "Email (development mode) to=%s subject=%r attachment=%s",
            to_email, subject, attachment_filename or "-",
        )
        logger.debug("Email body:\n%s", text_content or html_content)
        return f"dev-{message_id[:16]}"

    message = MIMEMultipart("mixed")
    message["Subject"] = subject
    message["From"] = f"{config.SMTP_FROM_NAME} <{config.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message["Message-ID"] = f"<{message_id}@{config.SMTP_FROM_EMAIL.split('@')[-1]}>"

    body_part = MIMEMultipart("alternative")
    if text_content:
        body_part.attach(MIMEText(text_content, "plain", "utf-8"))
    body_part.attach(MIMEText(html_content, "html", "utf-8"))
    message.attach(body_part)

    if attachment:
        pdf_attachment = MIMEApplication(attachment, _subtype="pdf")
        pdf_attachment.add_header("Content-Disposition", "attachment", filename=attachment_filename or "document.pdf")
        message.attach(pdf_attachment)

    try:
        await aiosmtplib.send(
            message,
            hostname=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            start_tls=True,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send email to %s: %s", to_email, exc)
        raise ExternalServiceError("smtp", "The email could not be sent. Please try again later.") from exc

    logger.info("Email sent to=%s subject=%r", to_email, subject)
    return message_id


# =============================================================================
# NOTIFICATION TEMPLATES
# =============================================================================

def _wrap_html(title: str, body: str, config: Settings) -> str:
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #1f2933;">
  <h2 style="color: #1e3a5f;">{escape(title)}</h2>
  {body}
  <p style="color: #7b8794; font-size: 12px;">{escape(config.APP_NAME)}</p>
</body>
</html>"""


async def send_password_reset_email(config: Settings, user: "User", token: str) -> str:
    reset_url = f"{config.BASE_URL}/reset-password?token={token}"
    hours = config.PASSWORD_RESET_EXPIRE_HOURS
    html = _wrap_html(
        "Password reset",
        f"""<p>Hello {escape(user.name)},</p>
  <p>Use the link below to choose a new password. It is valid for {hours} hours and can be used once.</p>
  <p><a href="{escape(reset_url)}">{escape(reset_url)}</a></p>
  <p>If you did not ask for this, you can ignore this email.</p>""",
        config,
    )
    text = (
        f"Hello {user.name},\n\n"
        f"Reset your password here (valid for {hours} hours, single use):\n{reset_url}\n"
    )
    return await send_email(config, user.email, f"{config.APP_NAME} password reset", html, text)


async def send_invoice_email(
    config: Settings,
    client: "Client",
    invoice: "Invoice",
    total: str,
    pdf_bytes: bytes,
) -> str:
    html = _wrap_html(
        f"Invoice {invoice.number}",
        f"""<p>Dear {escape(client.name)},</p>
  <p>Please find attached invoice <strong>{escape(invoice.number)}</strong>
  for <strong>{escape(total)}</strong>, due on {invoice.due_date:%d.%m.%Y}.</p>""",
        config,
    )
    text = (
        f"Dear {client.name},\n\n"
        f"Invoice {invoice.number} for {total} is attached. Due date: {invoice.due_date:%d.%m.%Y}.\n"
    )
    return await send_email(
        config,
        client.email,
        f"Invoice {invoice.number}",
        html,
        text,
        attachment=pdf_bytes,
        attachment_filename=f"{invoice.number}.pdf",
    )


async def send_message_email(config: Settings, to_email: str, subject: str, body: str) -> str:
    """Plain message typed by staff (replies and ad-hoc emails)."""
    html = _wrap_html(subject, "".join(f"<p>{escape(line)}</p>" for line in body.splitlines() if line), config)
    return await send_email(config, to_email, subject, html, body)


async def send_task_reminder_email(config: Settings, user: "User", task: "Task") -> str:
    due = f"{task.due_date:%d.%m.%Y %H:%M}" if task.due_date else "no due date"
    html = _wrap_html(
        "Task reminder",
        f"<p>Reminder: <strong>{escape(task.title)}</strong> ({escape(due)})</p>",
        config,
    )
    return await send_email(config, user.email, f"Reminder: {task.title}", html, f"Reminder: {task.title} ({due})")
