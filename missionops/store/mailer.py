"""
Outgoing mail for the reference store.
Without SMTP_HOST the transport is mock: messages are logged, not delivered.
"""
import smtplib
from email.message import EmailMessage
from typing import List, Optional

import structlog

from ..config import Settings

logger = structlog.get_logger(__name__)


class Mailer:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.outbox: List[EmailMessage] = []

    @property
    def is_mock(self) -> bool:
        return not self.settings.smtp_host

    def send(self, to: Optional[str], subject: str, body: str) -> bool:
        """Send one message. Returns True when it was actually handed to SMTP."""
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.mail_from or "missionops@localhost"
        msg["To"] = to or ""
        msg.set_content(body)
        self.outbox.append(msg)

        if self.is_mock or not to:
            logger.info("mock_email", to=to, subject=subject)
            return False

        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port) as smtp:
            if s.smtp_tls:
                smtp.starttls()
            if s.smtp_username and s.smtp_password:
                smtp.login(s.smtp_username, s.smtp_password)
            smtp.send_message(msg)
        logger.info("email_sent", to=to, subject=subject)
        return True
