"""
SMTP mail delivery.

smtplib is blocking, so send() is meant to run in a worker thread
(FastAPI runs sync background tasks in the threadpool).
"""

import smtplib
from email.message import EmailMessage

from events_platform.core.config import Settings


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.email_enabled

    def build_message(self, to: str, subject: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        return message

    def send(self, to: str, subject: str, text: str) -> None:
        message = self.build_message(to, subject, text)
        with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=10) as server:
            if self.settings.SMTP_USE_TLS:
                server.starttls()
            if self.settings.SMTP_USERNAME:
                server.login(self.settings.SMTP_USERNAME, self.settings.SMTP_PASSWORD or "")
            server.send_message(message)
