import html
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Callable, Optional

import config

logger = logging.getLogger(__name__)


# =======================================
# SECTION: RESULT TYPES
# =======================================

@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class FlightAlertEmail:
    subject: str
    html: str
    text: str


# to, subject, html, text
EmailSender = Callable[[str, str, str, str], EmailResult]


# =======================================
# SECTION: GENERIC NOTIFICATION SENDER
# =======================================

def send_notification_email(to_email: str, subject: str, html_body: str, text_body: str) -> EmailResult:
    """
    Send one multipart (text + HTML) email over SMTP.
    Never raises, failures come back as EmailResult(success=False, error=...).
    """
    if not config.smtp_configured():
        return EmailResult(success=False, error="SMTP settings are not fully configured on the server")

    if not to_email:
        return EmailResult(success=False, error="No recipient address")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"Flight Tracker <{config.ALERT_FROM_EMAIL}>"
    msg["To"] = to_email
    message_id = make_msgid(domain=config.ALERT_FROM_EMAIL.split("@")[-1])
    msg["Message-ID"] = message_id
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT) as server:
            server.starttls()
            server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"[email] send to {to_email} failed: {e}")
        return EmailResult(success=False, error=str(e))

    logger.info(f"[email] sent to={to_email} message_id={message_id}")
    return EmailResult(success=True, message_id=message_id)


# =======================================
# SECTION: FLIGHT ALERT EMAIL
# =======================================

def create_flight_alert_email(user_name: Optional[str], flight_number: str, alert_type: str, message: str) -> FlightAlertEmail:
    """
    Flight alert email:
    one message line plus the flight and alert type, with a link back to the dashboard.
    """
    subject = f"Flight Alert: {flight_number} - {alert_type}"
    greeting_name = user_name or "there"
    dashboard_url = f"{config.FRONTEND_BASE_URL.rstrip('/')}/dashboard/notifications"

    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #3b82f6;">Flight Alert: {html.escape(flight_number)}</h2>
      <p>Hello {html.escape(greeting_name)},</p>
      <p>{html.escape(message)}</p>
      <div style="margin: 20px 0; padding: 15px; background-color: #f3f4f6; border-radius: 5px;">
        <p style="margin: 0;"><strong>Flight:</strong> {html.escape(flight_number)}</p>
        <p style="margin: 5px 0;"><strong>Alert Type:</strong> {html.escape(alert_type)}</p>
      </div>
      <p><a href="{html.escape(dashboard_url)}">View your notifications</a></p>
      <p>Safe travels!</p>
      <p>- The Flight Tracker Team</p>
    </div>
    """

    lines = [
        f"Flight Alert: {flight_number}",
        "",
        f"Hello {greeting_name},",
        "",
        message,
        "",
        f"Flight: {flight_number}",
        f"Alert Type: {alert_type}",
        "",
        "View your notifications:",
        dashboard_url,
        "",
        "Safe travels!",
        "- The Flight Tracker Team",
    ]

    return FlightAlertEmail(subject=subject, html=html_body, text="\n".join(lines))
