"""
Mailer Factory

Returns the Mock or SendGrid mailer based on ENV_MODE.
"""

import logging
from functools import lru_cache

from dormside.core.config import get_settings
from dormside.services.notifications.base import BaseMailer, EmailMessage, EmailResult
from dormside.services.notifications.mock import MockMailer
from dormside.services.notifications.receipts import (
    build_receipt_message,
    build_receipt_messages,
    receipt_copies,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_mailer() -> BaseMailer:
    """Get the configured mailer."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Mailer: Using MockMailer (development mode)")
        return MockMailer()

    from dormside.services.notifications.real import SendGridMailer

    logger.info(f"Mailer: Using SendGridMailer ({settings.env_mode.value} mode)")
    return SendGridMailer(settings.sendgrid_api_key)


def reset_mailer() -> None:
    """Clear the cached mailer instance."""
    get_mailer.cache_clear()


__all__ = [
    "get_mailer",
    "reset_mailer",
    "build_receipt_message",
    "build_receipt_messages",
    "receipt_copies",
    "BaseMailer",
    "EmailMessage",
    "EmailResult",
    "MockMailer",
]
