"""
Cart Pricing

Turns a cart into the amounts an order is created with. All arithmetic is
done in ``Decimal`` and rounded to cents, so ``total`` always equals
``subtotal + delivery_fee + tip`` exactly.

Menu prices are display strings such as ``"$9.50"``; everything except
digits and the decimal point is stripped before parsing, and an
unparseable price counts as zero.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Protocol

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

_PRICE_CHARS = re.compile(r"[^0-9.]")


class PricedItem(Protocol):
    price: str
    quantity: int


def parse_price(price: str) -> Decimal:
    """Parse a display price (``"$9.50"``) into a Decimal amount."""
    cleaned = _PRICE_CHARS.sub("", price or "")
    if not cleaned:
        return ZERO
    try:
        return Decimal(cleaned).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ZERO


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to the processor's smallest unit (cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total(item: PricedItem) -> Decimal:
    return to_money(parse_price(item.price) * item.quantity)


@dataclass(frozen=True)
class Quote:
    subtotal: Decimal
    delivery_fee: Decimal
    tip: Decimal
    total: Decimal

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.total)


def quote_cart(
    items: Iterable[PricedItem],
    fulfillment: str,
    tip: Decimal,
    delivery_fee: Decimal,
) -> Quote:
    """
    Price a cart.

    Args:
        items: Cart lines with ``price`` and ``quantity``
        fulfillment: ``"delivery"`` adds ``delivery_fee``; anything else is pickup
        tip: Customer tip; negative tips are clamped to zero
        delivery_fee: Configured flat delivery charge

    Example:
        >>> q = quote_cart([Item("$9.50", 2)], "pickup", Decimal("1.50"), Decimal("3"))
        >>> q.total, q.amount_minor
        (Decimal('20.50'), 2050)
    """
    subtotal = to_money(sum((line_total(item) for item in items), ZERO))
    fee = to_money(delivery_fee) if fulfillment == "delivery" else ZERO
    tip = to_money(max(ZERO, tip))
    return Quote(
        subtotal=subtotal,
        delivery_fee=fee,
        tip=tip,
        total=to_money(subtotal + fee + tip),
    )
