"""
Mock Payment Gateway Implementation

Simulates Stripe-like payment intents without making real API calls.
Used in development mode (ENV_MODE=development) to:
    - Test the complete checkout flow locally
    - Develop without internet connectivity or Stripe keys

Behavior:
    - Keeps intents in memory for the life of the process
    - Optionally simulates latency and random declines
    - Generates Stripe-like IDs (pi_xxx) and client secrets
    - ``complete_intent`` / ``fail_intent`` stand in for the customer
      finishing (or failing) the payment in the browser
"""

import asyncio
import json
import logging
import random
import uuid
from typing import Optional

from dormside.core.errors import GatewayError
from dormside.schemas import IntentStatus
from dormside.services.payment.base import BasePaymentGateway, IntentResult

logger = logging.getLogger(__name__)


class MockPaymentGateway(BasePaymentGateway):
    """
    Mock implementation of the payment gateway.

    Attributes:
        failure_rate: Probability that intent creation is rejected (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> gateway = MockPaymentGateway()
        >>> intent = await gateway.create_intent(2050)
        >>> gateway.complete_intent(intent.intent_id)
        >>> await gateway.get_intent_status(intent.intent_id)
        <IntentStatus.SUCCEEDED: 'succeeded'>
    """

    DECLINE_REASONS = [
        ("processing_error", "An error occurred while processing your card."),
        ("rate_limit", "Too many requests. Please try again."),
    ]

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        timeout_seconds: float = 15.0,
    ):
        super().__init__(timeout_seconds=timeout_seconds)
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max(min_latency, max_latency)
        self._intents: dict[str, IntentResult] = {}
        self._idempotency_keys: dict[str, str] = {}

        logger.info(
            f"MockPaymentGateway initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{self.max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    @property
    def intents(self) -> dict[str, IntentResult]:
        return self._intents

    def _generate_payment_intent_id(self) -> str:
        """Generate a Stripe-like payment intent ID."""
        return f"pi_mock_{uuid.uuid4().hex[:24]}"

    async def _simulate_latency(self) -> None:
        if self.max_latency <= 0:
            return
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency >= self.timeout_seconds:
            await asyncio.sleep(self.timeout_seconds)
            raise GatewayError("Payment service timed out. Please try again.")
        await asyncio.sleep(latency)

    def _should_fail(self) -> bool:
        return self.failure_rate > 0 and random.random() < self.failure_rate

    async def create_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> IntentResult:
        await self._simulate_latency()

        if idempotency_key and idempotency_key in self._idempotency_keys:
            return self._intents[self._idempotency_keys[idempotency_key]]

        if amount_minor <= 0:
            raise GatewayError("Amount must be greater than 0")

        if self._should_fail():
            error_code, error_message = random.choice(self.DECLINE_REASONS)
            logger.debug(f"Mock: Intent creation rejected - {error_code}")
            raise GatewayError(error_message)

        intent_id = self._generate_payment_intent_id()
        intent = IntentResult(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_mock",
            status=IntentStatus.REQUIRES_ACTION,
            amount_minor=amount_minor,
            currency=currency,
            metadata=dict(metadata or {}),
        )
        self._intents[intent_id] = intent
        if idempotency_key:
            self._idempotency_keys[idempotency_key] = intent_id

        logger.info(f"Mock: Created payment intent {intent_id} for {amount_minor} {currency.upper()}")
        return intent

    async def get_intent(self, intent_id: str) -> IntentResult:
        await self._simulate_latency()
        intent = self._intents.get(intent_id)
        if intent is None:
            raise GatewayError(f"No such payment_intent: '{intent_id}'")
        return intent

    def _set_status(self, intent_id: str, status: IntentStatus) -> IntentResult:
        intent = self._intents.get(intent_id)
        if intent is None:
            raise GatewayError(f"No such payment_intent: '{intent_id}'")
        intent.status = status
        logger.debug(f"Mock: Intent {intent_id} -> {status.value}")
        return intent

    def complete_intent(self, intent_id: str) -> IntentResult:
        """Simulate the customer confirming the payment successfully."""
        return self._set_status(intent_id, IntentStatus.SUCCEEDED)

    def fail_intent(self, intent_id: str) -> IntentResult:
        """Simulate a declined card."""
        return self._set_status(intent_id, IntentStatus.FAILED)

    def cancel_intent(self, intent_id: str) -> IntentResult:
        return self._set_status(intent_id, IntentStatus.CANCELED)

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """
        Simulate webhook verification.

        In mock mode, always returns the parsed payload without
        cryptographic verification.
        """
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Mock: Invalid webhook payload")
            return None

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        return True
