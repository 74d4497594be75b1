"""
Test cart pricing - price parsing, fees, tips and minor units.
"""

from decimal import Decimal

import pytest

from dormside.services.pricing import parse_price, quote_cart, to_minor_units
from tests.conftest import mac_and_cheese


@pytest.mark.parametrize(
    "display, expected",
    [
        ("$9.50", Decimal("9.50")),
        ("12", Decimal("12")),
        (" $1,250.00 ", Decimal("1250.00")),
        ("free", Decimal("0")),
        ("", Decimal("0")),
        ("1.2.3", Decimal("0")),
    ],
)
def test_parse_price(display, expected):
    assert parse_price(display) == expected


def test_pickup_quote_has_no_delivery_fee():
    quote = quote_cart([mac_and_cheese()], "pickup", Decimal("1.50"), Decimal("3.00"))

    assert quote.subtotal == Decimal("19.00")
    assert quote.delivery_fee == Decimal("0.00")
    assert quote.total == Decimal("20.50")
    assert quote.amount_minor == 2050


def test_delivery_quote_adds_fee():
    quote = quote_cart([mac_and_cheese()], "delivery", Decimal("1.50"), Decimal("3.00"))

    assert quote.delivery_fee == Decimal("3.00")
    assert quote.total == Decimal("23.50")
    assert quote.amount_minor == 2350


def test_negative_tip_is_clamped():
    quote = quote_cart([mac_and_cheese(1)], "pickup", Decimal("-5"), Decimal("3.00"))

    assert quote.tip == Decimal("0.00")
    assert quote.total == Decimal("9.50")


def test_empty_cart_quotes_zero():
    quote = quote_cart([], "pickup", Decimal("0"), Decimal("3.00"))
    assert quote.total == Decimal("0.00")
    assert quote.amount_minor == 0


def test_minor_units_round_half_up():
    assert to_minor_units(Decimal("0.005")) == 1
    assert to_minor_units(Decimal("20.50")) == 2050


def test_large_quantities_are_priced():
    quote = quote_cart([mac_and_cheese(quantity=150)], "pickup", Decimal("0"), Decimal("3.00"))
    assert quote.total == Decimal("1425.00")
