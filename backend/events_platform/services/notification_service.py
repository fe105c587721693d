"""
Registration confirmation emails.

Delivery is best effort: it runs after the response has been sent, and a
failure never affects the registration that triggered it.
"""

from events_platform.core.config import Settings
from events_platform.core.logging import get_logger
from events_platform.infrastructure.mailer import SmtpMailer

logger = get_logger(__name__)


def render_registration_confirmation(ticket_info: dict) -> tuple[str, str]:
    subject = f"Your registration is confirmed: {ticket_info['event_title']}"
    text = (
        f"Hi {ticket_info['user_name']},\n\n"
        f"Thank you for registering for {ticket_info['event_title']}. "
        "Your registration has been confirmed.\n\n"
        "Event Details:\n"
        f"Date: {ticket_info['event_date']}\n"
        f"Location: {ticket_info.get('event_location') or 'Online'}\n\n"
        f"Your ticket code is: {ticket_info['ticket_code']}\n\n"
        "Please keep this email as your confirmation. "
        "You can also view your tickets in your account.\n\n"
        "Regards,\nEvents Platform Team"
    )
    return subject, text


def send_registration_confirmation(settings: Settings, ticket_info: dict) -> bool:
    mailer = SmtpMailer(settings)
    if not mailer.enabled:
        logger.info("registration_email_skipped", reason="smtp_not_configured")
        return False

    subject, text = render_registration_confirmation(ticket_info)
    try:
        mailer.send(ticket_info["user_email"], subject, text)
    except Exception as e:
        logger.error(
            "registration_email_failed",
            ticket_code=ticket_info.get("ticket_code"),
            error=str(e),
        )
        return False

    logger.info("registration_email_sent", ticket_code=ticket_info.get("ticket_code"))
    return True
