from __future__ import annotations
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from tutorslot.config import settings

log = logging.getLogger(__name__)

class EmailService:
    @staticmethod
    def is_email(value: Optional[str]) -> bool:
        if not value:
            return False
        return "@" in value and "." in value

    @staticmethod
    def build(to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = settings.smtp_from
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    @staticmethod
    def send(to_email: str, subject: str, body: str) -> bool:
        if not settings.smtp_enabled:
            return False
        msg = EmailService.build(to_email, subject, body)

        try:
            if settings.smtp_port == 465:
                with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port) as s:
                    if settings.smtp_user and settings.smtp_password:
                        s.login(settings.smtp_user, settings.smtp_password)
                    s.send_message(msg)
            else:
                with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
                    s.starttls()
                    if settings.smtp_user and settings.smtp_password:
                        s.login(settings.smtp_user, settings.smtp_password)
                    s.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError) as e:
            log.error(f"Failed to send email to {to_email}: {e}")
            return False
