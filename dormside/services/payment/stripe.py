"""
Stripe Payment Gateway Implementation

Production implementation using the official Stripe Python SDK.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STRIPE_SECRET_KEY must be set in environment
    - STRIPE_WEBHOOK_SECRET for webhook verification

Security Notes:
    - Card data never touches this server; the browser confirms the
      intent directly with Stripe using the client secret
    - Always verify webhook signatures
    - Idempotency keys make intent creation safe to retry
"""

import json
import logging
from typing import Any, Optional

import stripe

from dormside.core.config import get_settings
from dormside.core.errors import GatewayError
from dormside.schemas import IntentStatus
from dormside.services.payment.base import BasePaymentGateway, IntentResult

logger = logging.getLogger(__name__)


def normalize_status(intent: Any) -> IntentStatus:
    """
    Map Stripe's PaymentIntent status onto the storefront's five states.

    A fresh intent sits in ``requires_payment_method``; it only counts as
    failed once Stripe has recorded a ``last_payment_error`` on it.
    """
    status = intent.status
    if status == "succeeded":
        return IntentStatus.SUCCEEDED
    if status in ("processing", "requires_capture"):
        return IntentStatus.PROCESSING
    if status == "canceled":
        return IntentStatus.CANCELED
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return IntentStatus.FAILED
    return IntentStatus.REQUIRES_ACTION


def _metadata(intent: Any) -> dict:
    metadata = getattr(intent, "metadata", None)
    if not metadata:
        return {}
    return {key: metadata[key] for key in metadata.keys()}


class StripePaymentGateway(BasePaymentGateway):
    """
    Production Stripe payment gateway.

    Configuration:
        Requires STRIPE_SECRET_KEY environment variable.
        Optionally uses STRIPE_WEBHOOK_SECRET for webhook verification.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        """
        Initialize Stripe with API key from settings.

        Raises:
            GatewayError: If STRIPE_SECRET_KEY is not configured
        """
        settings = get_settings()
        super().__init__(timeout_seconds=timeout_seconds or settings.gateway_timeout_seconds)

        if not settings.stripe_secret_key:
            raise GatewayError(
                "STRIPE_SECRET_KEY is required outside development mode. "
                "Set it in your .env file or environment variables."
            )

        # Configure Stripe SDK
        stripe.api_key = settings.stripe_secret_key
        stripe.max_network_retries = 2

        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.stripe_currency

        logger.info("StripePaymentGateway initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "stripe"

    def _to_result(self, intent: Any) -> IntentResult:
        return IntentResult(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            status=normalize_status(intent),
            amount_minor=intent.amount,
            currency=intent.currency,
            metadata=_metadata(intent),
        )

    async def create_intent(
        self,
        amount_minor: int,
        currency: str = "usd",
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> IntentResult:
        """
        Create a PaymentIntent for client-side confirmation.

        Returns a client_secret that the frontend uses with Stripe.js
        to complete the payment.
        """
        if amount_minor <= 0:
            raise GatewayError("Amount must be greater than 0")

        params = {
            "amount": amount_minor,
            "currency": currency or self._currency,
            "metadata": {k: str(v) for k, v in (metadata or {}).items()},
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = await self._call(
                "create_intent", lambda: stripe.PaymentIntent.create(**params)
            )
        except stripe.CardError as e:
            logger.warning(f"Stripe: Card declined - {e.code}: {e.user_message}")
            raise GatewayError(e.user_message or "Your card was declined.") from e
        except stripe.AuthenticationError as e:
            logger.critical(f"Stripe: Authentication failed - {e}")
            raise GatewayError("Payment service configuration error") from e
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe: Connection error - {e}")
            raise GatewayError() from e
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to create PaymentIntent - {e}")
            raise GatewayError(e.user_message or "Unable to start checkout") from e

        logger.info(f"Stripe: PaymentIntent created - {intent.id} - status={intent.status}")
        return self._to_result(intent)

    async def get_intent(self, intent_id: str) -> IntentResult:
        try:
            intent = await self._call(
                "get_intent", lambda: stripe.PaymentIntent.retrieve(intent_id)
            )
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe: Unknown PaymentIntent {intent_id} - {e}")
            raise GatewayError("Payment could not be found") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe: Failed to retrieve PaymentIntent {intent_id} - {e}")
            raise GatewayError() from e
        return self._to_result(intent)

    async def verify_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Optional[dict]:
        """
        Verify and parse a Stripe webhook event.

        Events are rejected outright when no webhook secret is configured,
        since an unsigned event could mark any order as paid.
        """
        if not self._webhook_secret:
            logger.error("Stripe: Webhook secret not configured, rejecting event")
            return None

        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe: Webhook signature invalid - {e}")
            return None
        except ValueError as e:
            logger.warning(f"Stripe: Webhook payload invalid - {e}")
            return None

        logger.debug(f"Stripe: Webhook verified - {event.type}")
        # Signature checked; hand back the event as plain JSON
        return json.loads(payload)

    async def health_check(self) -> bool:
        """Make a lightweight API call to verify credentials and connectivity."""
        try:
            await self._call("health_check", stripe.Account.retrieve)
            return True
        except (stripe.StripeError, GatewayError) as e:
            logger.error(f"Stripe: Health check failed - {e}")
            return False
