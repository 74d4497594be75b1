"""
Payment Gateway Factory

Provides a single entry point for obtaining a payment gateway instance.
The rest of the application remains agnostic about which implementation
is being used.

Usage:
    from dormside.services.payment import get_payment_gateway

    gateway = get_payment_gateway()
    intent = await gateway.create_intent(2050, "usd", {"order_id": order.id})

Environment Switching:
    - ENV_MODE=development → MockPaymentGateway (no API calls)
    - ENV_MODE=staging → StripePaymentGateway (test keys)
    - ENV_MODE=production → StripePaymentGateway (live keys)
"""

import logging
from functools import lru_cache

from dormside.core.config import get_settings
from dormside.services.payment.base import BasePaymentGateway, IntentResult
from dormside.services.payment.mock import MockPaymentGateway
from dormside.services.payment.stripe import StripePaymentGateway

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_gateway() -> BasePaymentGateway:
    """
    Get the configured payment gateway instance.

    The instance is cached so the mock gateway's in-memory intents survive
    across requests.

    Raises:
        GatewayError: If not in development mode and Stripe key not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Payment Gateway: Using MockPaymentGateway (development mode)")
        return MockPaymentGateway(
            failure_rate=settings.mock_payment_failure_rate,
            min_latency=settings.mock_payment_min_latency,
            max_latency=settings.mock_payment_max_latency,
            timeout_seconds=settings.gateway_timeout_seconds,
        )

    logger.info(
        f"Payment Gateway: Using StripePaymentGateway "
        f"({settings.env_mode.value} mode)"
    )
    return StripePaymentGateway()


def reset_payment_gateway() -> None:
    """
    Clear the cached gateway instance.

    The next call to get_payment_gateway() will create a new instance.
    """
    get_payment_gateway.cache_clear()
    logger.debug("Payment gateway cache cleared")


__all__ = [
    "get_payment_gateway",
    "reset_payment_gateway",
    "BasePaymentGateway",
    "IntentResult",
    "MockPaymentGateway",
    "StripePaymentGateway",
]
