import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from coachsched.core.config import settings

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> bool:
    """Send email via SMTP (blocking). Run from a worker thread."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_session_scheduled_html(recipient_name: str, title: str, message: str) -> str:
    """HTML body for a session-scheduled notification."""
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{_html_escape(title)}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f3f4f6;">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;">
          <tr>
            <td style="padding:32px;">
              <h1 style="margin:0 0 8px 0;font-size:22px;font-weight:600;color:#111827;">{_html_escape(title)}</h1>
              <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">Hi {_html_escape(recipient_name or 'there')},</p>
              <p style="margin:0 0 24px 0;font-size:15px;color:#374151;">{_html_escape(message)}</p>
              <p style="margin:0;font-size:13px;color:#6b7280;">{_html_escape(settings.site_name)}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_session_email(to_email: str, recipient_name: str | None, title: str, message: str) -> bool:
    """Compose and send a session notification email (blocking)."""
    subject = f"{settings.site_name} – {title}"
    return _send_email_sync(to_email, subject, build_session_scheduled_html(recipient_name or "", title, message))
