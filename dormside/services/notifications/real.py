"""
SendGrid Mailer

Production implementation using the SendGrid v3 API.
"""

import logging

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Bcc, Mail, ReplyTo

from dormside.core.errors import ConfigurationError
from dormside.services.notifications.base import BaseMailer, EmailMessage, EmailResult

logger = logging.getLogger(__name__)


class SendGridMailer(BaseMailer):
    """Production mailer using SendGrid."""

    def __init__(self, api_key: str):
        if not api_key:
            raise ConfigurationError("SENDGRID_API_KEY is required outside development mode")
        self.client = SendGridAPIClient(api_key)
        logger.info("SendGridMailer initialized")

    @property
    def provider_name(self) -> str:
        return "sendgrid"

    def send(self, message: EmailMessage) -> EmailResult:
        mail = Mail(
            from_email=message.from_email,
            to_emails=message.to,
            subject=message.subject,
            html_content=message.html,
            plain_text_content=message.text,
        )
        if message.reply_to:
            mail.reply_to = ReplyTo(message.reply_to)
        if message.bcc:
            mail.add_bcc(Bcc(message.bcc))

        try:
            response = self.client.send(mail)
        except HTTPError as e:
            logger.error(f"SendGrid error for {message.to}: {e}")
            return EmailResult(success=False, error_message=str(e), provider="sendgrid")

        logger.info(f"Email sent to {message.to}: {response.status_code}")
        return EmailResult(
            success=response.status_code in (200, 201, 202),
            message_id=response.headers.get("X-Message-Id"),
            provider="sendgrid",
        )
