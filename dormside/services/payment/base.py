"""
Payment Gateway Abstract Base Class

Defines the interface contract for all payment gateway implementations.
Both MockPaymentGateway and StripePaymentGateway implement these methods,
so the order lifecycle controller behaves identically regardless of which
one is active.

Contract:
    - Amounts are passed in minor units (cents)
    - Every failure (network, invalid amount, misconfiguration, timeout)
      is raised as ``GatewayError``; callers never receive a half-created
      intent
    - Every call completes or fails within ``timeout_seconds``
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from dormside.core.errors import GatewayError
from dormside.schemas import IntentStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class IntentResult:
    """
    Standardized view of one payment intent.

    Attributes:
        intent_id: Processor identifier (Stripe format: pi_xxx)
        client_secret: Secret the browser uses to confirm the payment
        status: Normalized intent status
        amount_minor: Amount in cents
        currency: Currency code (e.g., "usd")
        metadata: Key-value data attached at creation (carries ``order_id``)
    """
    intent_id: str
    client_secret: Optional[str]
    status: IntentStatus
    amount_minor: int
    currency: str = "usd"
    metadata: dict = field(default_factory=dict)

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.get("order_id")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "intent_id": self.intent_id,
            "status": self.status.value,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "metadata": self.metadata,
        }


class BasePaymentGateway(ABC):
    """
    Abstract base class for payment gateways.

    Example:
        >>> gateway = get_payment_gateway()  # Returns Mock or Stripe
        >>> intent = await gateway.create_intent(2050, "usd", {"order_id": "..."})
        >>> intent.client_secret
    """

    def __init__(self, timeout_seconds: float = 15.0):
        self.timeout_seconds = timeout_seconds

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the payment provider.

        Returns:
            str: Provider name (e.g., "mock", "stripe")
        """
        pass

    async def _call(self, operation: str, func: Callable[[], T]) -> T:
        """
        Run a blocking SDK call in a worker thread under the gateway timeout.

        Raises:
            GatewayError: If the call does not finish in time
        """
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"{self.provider_name}: {operation} timed out after {self.timeout_seconds}s")
            raise GatewayError(
                "Payment service timed out. Please try again."
            ) from e

    @abstractmethod
    async def create_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> IntentResult:
        """
        Create a payment intent for client-side confirmation.

        Args:
            amount_minor: Amount in cents; must be positive
            currency: Currency code
            metadata: Additional data to attach (string values)
            idempotency_key: Repeating a key returns the intent created with it

        Returns:
            IntentResult: Contains client_secret for the frontend

        Raises:
            GatewayError: On any processor failure
        """
        pass

    @abstractmethod
    async def get_intent(self, intent_id: str) -> IntentResult:
        """
        Retrieve an existing intent.

        Raises:
            GatewayError: If the intent is unknown or the processor fails
        """
        pass

    async def get_intent_status(self, intent_id: str) -> IntentStatus:
        return (await self.get_intent(intent_id)).status

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """
        Verify and parse a webhook from the payment provider.

        Returns:
            dict: Parsed webhook event if valid, None if invalid
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the payment service.

        Returns:
            bool: True if service is reachable and operational
        """
        pass
