"""
Order Lifecycle Controller

The only component that changes an order's status. It owns the rules
linking the cart, the store-status gate, the order store and the payment
gateway:

    NoOrder → pending/cash_pending → paid        (delete from any state)

    - Cash orders are stored as ``cash_pending`` and only an administrator
      can mark them ``paid``.
    - Card orders are stored as ``pending`` with exactly one live payment
      intent; they become ``paid`` only after the processor reports the
      order's own intent as succeeded.
    - ``paid`` is terminal.

Validation and gate checks run before any gateway call, so a rejected
request never leaves a stray intent or half-created order behind.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from dormside.core.errors import (
    GatewayError,
    InvalidAmount,
    InvalidTransition,
    NotFound,
    OrdersClosed,
    PaymentReconciliationError,
    ValidationError,
)
from dormside.schemas import (
    CheckoutRequest,
    Fulfillment,
    IntentStatus,
    Order,
    OrderCreateRequest,
    OrderDraft,
    OrderStatus,
    PaymentMethod,
)
from dormside.services.payment.base import BasePaymentGateway, IntentResult
from dormside.services.pricing import Quote, quote_cart
from dormside.services.storage.base import BaseOrderStore, BaseStoreStatusGate

logger = logging.getLogger(__name__)

ReceiptDispatcher = Callable[[Order], None]

# Intents in these states can never be confirmed; a retry needs a fresh one.
DEAD_INTENT_STATES = (IntentStatus.FAILED, IntentStatus.CANCELED)
STATUS_WRITE_ATTEMPTS = 3


@dataclass
class PlacementResult:
    order: Order
    client_secret: Optional[str] = None


@dataclass
class PaymentStart:
    client_secret: str
    payment_intent_id: str
    order_id: Optional[str] = None


@dataclass
class FinalizeOutcome:
    order: Order
    payment_status: Optional[IntentStatus] = None


def _no_receipt(order: Order) -> None:
    return None


class OrderLifecycleController:
    """
    Coordinates order placement, payment and administrative overrides.

    Example:
        >>> controller = OrderLifecycleController(orders, gate, gateway)
        >>> placed = await controller.place_order(request)
        >>> outcome = await controller.finalize_payment(placed.order.id, intent_id)
    """

    def __init__(
        self,
        order_store: BaseOrderStore,
        status_gate: BaseStoreStatusGate,
        gateway: BasePaymentGateway,
        delivery_fee: Decimal = Decimal("3.00"),
        currency: str = "usd",
        receipt_dispatcher: Optional[ReceiptDispatcher] = None,
    ):
        self.orders = order_store
        self.gate = status_gate
        self.gateway = gateway
        self.delivery_fee = delivery_fee
        self.currency = currency
        self._send_receipt = receipt_dispatcher or _no_receipt

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _require_open(self) -> None:
        if not await self.gate.is_accepting_orders():
            logger.info("Rejected request: store is not accepting orders")
            raise OrdersClosed()

    def _quote(self, items, fulfillment: Fulfillment, tip: Decimal) -> Quote:
        return quote_cart(items, fulfillment.value, tip, self.delivery_fee)

    def _dispatch_receipt(self, order: Order) -> None:
        self._send_receipt(order)

    @staticmethod
    def _validate(request: OrderCreateRequest) -> None:
        if not request.items:
            raise ValidationError("Cart is empty")
        if not request.customer.name.strip():
            raise ValidationError("Customer name is required")
        if request.fulfillment == Fulfillment.DELIVERY and not request.customer.address.strip():
            raise ValidationError("Delivery address is required")

        expected = (
            OrderStatus.CASH_PENDING
            if request.payment_method == PaymentMethod.CASH
            else OrderStatus.PENDING
        )
        if request.status is not None and request.status != expected:
            raise ValidationError(
                f"Status '{request.status.value}' is not valid for a "
                f"{request.payment_method.value} order"
            )

    async def _create_intent(
        self,
        quote: Quote,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> IntentResult:
        if quote.amount_minor <= 0:
            raise InvalidAmount()
        await self._require_open()
        return await self.gateway.create_intent(
            quote.amount_minor,
            self.currency,
            metadata,
            idempotency_key=idempotency_key,
        )

    async def _write_status(self, order: Order, status: OrderStatus) -> tuple[Order, bool]:
        """
        Compare-and-set ``status`` against the last status read for ``order``.

        Returns the stored order and whether this call made the change. A
        concurrent writer that already set ``status``, or made the order
        ``paid``, ends the attempt without a write.
        """
        for _ in range(STATUS_WRITE_ATTEMPTS):
            updated = await self.orders.update_status(order.id, status, expected=order.status)
            if updated is not None:
                return updated, True
            current = await self.orders.get(order.id)
            if current is None:
                raise NotFound()
            if current.status in (status, OrderStatus.PAID):
                return current, False
            order = current
        raise InvalidTransition("Order is being updated concurrently. Please try again.")

    def _order_quote(self, order: Order) -> Quote:
        # Stored amounts win over the current fee configuration.
        return Quote(
            subtotal=order.total - order.delivery_fee - order.tip,
            delivery_fee=order.delivery_fee,
            tip=order.tip,
            total=order.total,
        )

    def _intent_metadata(self, order: Order) -> dict:
        return {
            "order_id": order.id,
            "fulfillment": order.fulfillment.value,
            "tip": str(order.tip),
            "order_source": "storefront",
        }

    async def ensure_payment_intent(self, order: Order) -> tuple[Order, IntentResult]:
        """
        Return the live intent for a pending card order, creating one if needed.

        The recorded intent is reused unless the processor reports it failed
        or canceled. A replacement is keyed on the intent it replaces, so
        concurrent retries converge on the same new intent.
        """
        previous_id = order.payment_intent_id
        if previous_id:
            current = await self.gateway.get_intent(previous_id)
            if current.status not in DEAD_INTENT_STATES:
                logger.debug(f"Reusing intent {previous_id} for order {order.id}")
                return order, current
            logger.info(f"Intent {previous_id} for order {order.id} is {current.status.value}, replacing")

        idempotency_key = f"{order.id}:{previous_id or 'initial'}"
        try:
            intent = await self._create_intent(
                self._order_quote(order),
                self._intent_metadata(order),
                idempotency_key=idempotency_key,
            )
        except GatewayError as e:
            raise GatewayError(e.message, order_id=order.id) from e

        updated = await self.orders.attach_payment_intent(order.id, intent.intent_id)
        if updated is None:
            raise NotFound()
        logger.info(f"Order {order.id}: payment intent {intent.intent_id} attached")
        return updated, intent

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    async def place_order(self, request: OrderCreateRequest) -> PlacementResult:
        """
        Create an order from a checkout submission.

        A submission carrying the id of an order this store already knows
        is a repeat of an earlier submission: the existing order is returned
        and no second order or intent is created.

        Raises:
            OrdersClosed: The store is not accepting orders
            ValidationError: Incomplete cart or customer details, or amounts
                that disagree with the server's quote
            InvalidAmount: The total is not positive
            GatewayError: Intent creation failed (carries the order id)
        """
        await self._require_open()

        if request.order_id:
            existing = await self.orders.get(request.order_id)
            if existing is not None:
                return await self._resume(existing)
            logger.info(f"Unknown order id {request.order_id} on submission, creating a new order")

        self._validate(request)

        quote = self._quote(request.items, request.fulfillment, request.tip)
        if quote.total <= 0:
            raise InvalidAmount()
        if request.total != quote.total:
            raise ValidationError(
                f"Order total {request.total} does not match {quote.total}"
            )
        if request.delivery_fee != quote.delivery_fee:
            raise ValidationError(
                f"Delivery fee {request.delivery_fee} does not match {quote.delivery_fee}"
            )

        is_cash = request.payment_method == PaymentMethod.CASH
        draft = OrderDraft(
            status=OrderStatus.CASH_PENDING if is_cash else OrderStatus.PENDING,
            fulfillment=request.fulfillment,
            payment_method=request.payment_method,
            tip=quote.tip,
            delivery_fee=quote.delivery_fee,
            total=quote.total,
            items=request.items,
            customer=request.customer,
        )
        order = await self.orders.create(draft)
        logger.info(
            f"Order {order.id} placed: {order.payment_method.value}, "
            f"{order.fulfillment.value}, total {order.total}"
        )

        if is_cash:
            self._dispatch_receipt(order)
            return PlacementResult(order=order)

        order, intent = await self.ensure_payment_intent(order)
        return PlacementResult(order=order, client_secret=intent.client_secret)

    async def _resume(self, order: Order) -> PlacementResult:
        if order.status == OrderStatus.PENDING and order.payment_method == PaymentMethod.CARD:
            order, intent = await self.ensure_payment_intent(order)
            return PlacementResult(order=order, client_secret=intent.client_secret)
        logger.debug(f"Repeat submission for order {order.id} ({order.status.value})")
        return PlacementResult(order=order)

    # =========================================================================
    # PAYMENT
    # =========================================================================

    async def start_payment(self, request: CheckoutRequest) -> PaymentStart:
        """
        Obtain a client secret for a card payment.

        With ``order_id`` the order's own intent is reused or replaced.
        Without it, an intent is created for the cart's quote alone; such
        an intent names no order and can never finalize one.

        Raises:
            OrdersClosed: The store is not accepting orders, whatever the
                request names
        """
        await self._require_open()

        if request.order_id:
            order = await self.orders.get(request.order_id)
            if order is None:
                raise NotFound()
            if order.payment_method != PaymentMethod.CARD:
                raise ValidationError("Order is not a card order")
            if order.status != OrderStatus.PENDING:
                raise InvalidTransition(f"Order is already {order.status.value}")
            order, intent = await self.ensure_payment_intent(order)
            return PaymentStart(
                client_secret=intent.client_secret,
                payment_intent_id=intent.intent_id,
                order_id=order.id,
            )

        if not request.items:
            raise ValidationError("Cart is empty")
        quote = self._quote(request.items, request.delivery_option, request.tip)
        intent = await self._create_intent(
            quote,
            {
                "fulfillment": request.delivery_option.value,
                "tip": str(quote.tip),
                "order_source": "storefront",
            },
        )
        return PaymentStart(
            client_secret=intent.client_secret,
            payment_intent_id=intent.intent_id,
        )

    async def finalize_payment(
        self,
        order_id: str,
        payment_intent_id: Optional[str],
    ) -> FinalizeOutcome:
        """
        Mark a card order paid once its own intent has succeeded.

        Raises:
            NotFound: Unknown order id
            PaymentReconciliationError: The intent cannot be matched to the order
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise NotFound()
        if order.status == OrderStatus.PAID:
            return FinalizeOutcome(order=order)

        if not payment_intent_id:
            raise PaymentReconciliationError("A payment intent id is required")
        if order.payment_method != PaymentMethod.CARD:
            raise PaymentReconciliationError("Cash orders cannot be paid by card")
        if payment_intent_id != order.payment_intent_id:
            logger.warning(
                f"Order {order_id}: intent {payment_intent_id} does not match "
                f"recorded intent {order.payment_intent_id}"
            )
            raise PaymentReconciliationError()

        intent = await self.gateway.get_intent(payment_intent_id)
        if intent.order_id != order.id:
            logger.warning(f"Intent {payment_intent_id} belongs to order {intent.order_id}, not {order_id}")
            raise PaymentReconciliationError()

        if intent.status != IntentStatus.SUCCEEDED:
            logger.info(f"Order {order_id}: intent {intent.intent_id} is {intent.status.value}")
            return FinalizeOutcome(order=order, payment_status=intent.status)

        updated, changed = await self._write_status(order, OrderStatus.PAID)
        if changed:
            logger.info(f"✅ Order {order.id} paid ({intent.intent_id})")
            self._dispatch_receipt(updated)
        else:
            logger.debug(f"Order {order.id} was marked paid by a concurrent request")
        return FinalizeOutcome(order=updated, payment_status=intent.status)

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    async def override_status(self, order_id: str, status: OrderStatus) -> Order:
        """Set a status by hand. A paid order can never leave ``paid``."""
        order = await self.orders.get(order_id)
        if order is None:
            raise NotFound()
        if order.status == status:
            return order
        if order.status == OrderStatus.PAID:
            raise InvalidTransition("Paid orders cannot change status")

        updated, changed = await self._write_status(order, status)
        if updated.status != status:
            raise InvalidTransition("Paid orders cannot change status")
        if changed:
            logger.info(f"Order {order_id}: {order.status.value} -> {status.value} (admin)")
            if status == OrderStatus.PAID:
                self._dispatch_receipt(updated)
        return updated

    async def delete_order(self, order_id: str) -> bool:
        removed = await self.orders.delete(order_id)
        logger.info(f"Order {order_id} {'deleted' if removed else 'not found for deletion'}")
        return removed

    async def list_orders(self) -> list[Order]:
        return await self.orders.list_orders()
