"""
Email delivery for sync failure alerts.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional
import logging

from core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = True
    sender: str = "alerts@propsync.local"
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpConfig":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.ALERT_EMAIL_FROM,
        )


class EmailNotifier:
    """
    Sends plain-text alert emails over SMTP.

    ``smtplib`` blocks, so each send runs in a worker thread.
    """

    def __init__(self, config: SmtpConfig):
        self.config = config

    def _build_message(self, recipients: List[str], subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.sender
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body, "plain"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.user and self.config.password:
                server.login(self.config.user, self.config.password)
            server.send_message(msg)

    async def send(self, recipients: List[str], subject: str, body: str) -> bool:
        """
        Deliver one message to every recipient.

        Returns:
            True when the SMTP server accepted the message
        """
        if not recipients:
            logger.warning(f"No recipients for alert email: {subject}")
            return False

        msg = self._build_message(recipients, subject, body)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Alert email failed: {type(e).__name__}: {str(e)}")
            return False

        logger.info(f"Alert email sent to {len(recipients)} recipient(s): {subject}")
        return True
