"""
Mailer Abstract Base Class

Defines the interface for sending transactional email (order receipts).
Supports both Mock (development) and SendGrid (production) implementations.

Mailers are synchronous: they are called from Celery tasks, never from
the request path.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class EmailMessage:
    """One outgoing email."""
    to: str
    subject: str
    text: str
    html: str
    from_email: str
    reply_to: Optional[str] = None
    bcc: Optional[str] = None


@dataclass
class EmailResult:
    """Result from sending one email."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


class BaseMailer(ABC):
    """Abstract base class for mailers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def send(self, message: EmailMessage) -> EmailResult:
        """Send an email. Delivery failures are reported, not raised."""
        pass
