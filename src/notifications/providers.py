"""Email delivery backends selected by ``EMAIL_PROVIDER``."""

import logging
import smtplib
from email.message import EmailMessage
from typing import List, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from src.config import Settings, settings as default_settings
from src.utils import utcnow

logger = logging.getLogger(__name__)


class EmailProvider:
    """Sends one email or raises."""

    name = "base"

    def send(self, to: str, subject: str, html_body: str) -> None:
        raise NotImplementedError


class ConsoleEmailProvider(EmailProvider):
    """Logs emails instead of sending them; keeps a copy for tests and local runs."""

    name = "console"

    def __init__(self):
        self.sent_emails: List[dict] = []

    def send(self, to: str, subject: str, html_body: str) -> None:
        email_data = {
            "to": to,
            "subject": subject,
            "body": html_body,
            "sent_at": utcnow(),
        }
        self.sent_emails.append(email_data)
        logger.info("Email to %s: %s", to, subject)
        logger.debug("Email body:\n%s", html_body)


class SmtpEmailProvider(EmailProvider):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 45.0
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html_body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)


class SendGridEmailProvider(EmailProvider):
    name = "sendgrid"

    def __init__(self, api_key: str, sender: str, timeout: float = 45.0):
        self.client = SendGridAPIClient(api_key)
        self.client.client.timeout = timeout
        self.sender = sender

    def send(self, to: str, subject: str, html_body: str) -> None:
        message = Mail(from_email=self.sender, to_emails=to, subject=subject, html_content=html_body)
        response = self.client.send(message)
        if response.status_code >= 400:
            raise RuntimeError(f"SendGrid failed with status {response.status_code}: {response.body}")


def build_provider(config: Settings = default_settings) -> EmailProvider:
    """Provider for the configured ``EMAIL_PROVIDER``"""
    if config.EMAIL_PROVIDER == "smtp":
        if not config.SMTP_HOST:
            raise ValueError("SMTP_HOST is required when EMAIL_PROVIDER is smtp")
        return SmtpEmailProvider(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            sender=config.EMAIL_FROM,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            timeout=config.EMAIL_TIMEOUT_SECONDS
        )
    if config.EMAIL_PROVIDER == "sendgrid":
        if not config.SENDGRID_API_KEY:
            raise ValueError("SENDGRID_API_KEY is required when EMAIL_PROVIDER is sendgrid")
        return SendGridEmailProvider(
            api_key=config.SENDGRID_API_KEY,
            sender=config.EMAIL_FROM,
            timeout=config.EMAIL_TIMEOUT_SECONDS
        )
    return ConsoleEmailProvider()
