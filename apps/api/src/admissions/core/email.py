"""
Email Service using Resend

Handles sending emails for application submission and status changes.
"""

import asyncio
import logging
import os
from html import escape

import resend

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = os.getenv("RESEND_API_KEY")

# Configurations
EMAIL_FROM = os.getenv("EMAIL_FROM", "Admissions <noreply@admissions.local>")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

_STYLE = """
        <style>
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
        </style>
"""


def _wrap(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>{_STYLE}</head>
    <body>
        <div class="container">
{body}
            <div class="footer">
                <p>This is an automated message from the admissions office.</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": EMAIL_FROM,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_application_submitted(
    to_email: str,
    applicant_name: str,
    application_number: str,
    institution: str,
) -> bool:
    """Confirm to the applicant that their application was received."""
    safe_name = escape(applicant_name)
    safe_number = escape(application_number)
    safe_institution = escape(institution)

    status_url = f"{FRONTEND_URL}/applications"
    body = f"""
            <h1 class="header">Application Received</h1>

            <p>Hello {safe_name},</p>

            <p>Your application to <strong>{safe_institution}</strong> has been submitted.</p>

            <div class="info-box">
                <p><strong>Application number:</strong> {safe_number}</p>
            </div>

            <p>Keep this number for your records. You can follow the progress of your application here:</p>

            <a href="{status_url}" class="button">Track Application</a>
"""
    return await send_email(
        to_email=to_email,
        subject=f"Application {safe_number} received",
        html_content=_wrap(body),
    )


async def send_application_status_changed(
    to_email: str,
    applicant_name: str,
    application_number: str,
    status_label: str,
    feedback: str | None = None,
) -> bool:
    """Tell the applicant their application moved to a new status."""
    safe_name = escape(applicant_name)
    safe_number = escape(application_number)
    safe_label = escape(status_label)

    feedback_html = ""
    if feedback:
        feedback_html = f"""
            <div class="info-box">
                <p><strong>Message from the admissions office:</strong></p>
                <p>{escape(feedback)}</p>
            </div>
"""

    status_url = f"{FRONTEND_URL}/applications"
    body = f"""
            <h1 class="header">Application Update</h1>

            <p>Hello {safe_name},</p>

            <p>The status of application <strong>{safe_number}</strong> is now <strong>{safe_label}</strong>.</p>
{feedback_html}
            <a href="{status_url}" class="button">View Application</a>
"""
    return await send_email(
        to_email=to_email,
        subject=f"Application {safe_number}: {safe_label}",
        html_content=_wrap(body),
    )


async def send_notification_email(to_email: str, title: str, message: str) -> bool:
    """Deliver an outreach notification by email."""
    body = f"""
            <h1 class="header">{escape(title)}</h1>

            <p>{escape(message)}</p>
"""
    return await send_email(
        to_email=to_email,
        subject=escape(title),
        html_content=_wrap(body),
    )


async def send_application_slip(
    to_email: str,
    application_number: str,
    slip_html: str,
) -> bool:
    """Send the applicant their application slip. ``slip_html`` is a full, escaped page."""
    return await send_email(
        to_email=to_email,
        subject=f"Application Slip - {escape(application_number)}",
        html_content=slip_html,
    )
