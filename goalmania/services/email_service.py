"""Mail transport used by the notification dispatcher"""

from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol
import logging

import aiosmtplib

from goalmania.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class MailTransport(Protocol):
    async def send(self, message: MailMessage) -> None:
        """Deliver the message or raise"""


class SmtpMailTransport:
    """SMTP delivery through aiosmtplib"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        start_tls: Optional[bool] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.start_tls = settings.SMTP_START_TLS if start_tls is None else start_tls
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME

    def build(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = message.to

        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        if message.html:
            msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    async def send(self, message: MailMessage) -> None:
        async with aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            start_tls=self.start_tls,
            timeout=30,
        ) as smtp:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.send_message(self.build(message))

        logger.info(f"Email '{message.subject}' sent to {message.to}")
