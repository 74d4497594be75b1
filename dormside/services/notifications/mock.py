"""
Mock Mailer

Records messages in memory for development and tests.
No actual email is sent - just logged.
"""

import logging
import uuid

from dormside.services.notifications.base import BaseMailer, EmailMessage, EmailResult

logger = logging.getLogger(__name__)


class MockMailer(BaseMailer):
    """Mock mailer; ``outbox`` holds every message sent in this process."""

    def __init__(self):
        self.outbox: list[EmailMessage] = []
        logger.info("MockMailer initialized")

    @property
    def provider_name(self) -> str:
        return "mock"

    def send(self, message: EmailMessage) -> EmailResult:
        message_id = f"email_mock_{uuid.uuid4().hex[:12]}"
        self.outbox.append(message)
        logger.info(f"Mock email sent to {message.to}: {message.subject} (ID: {message_id})")
        return EmailResult(success=True, message_id=message_id, provider="mock")
