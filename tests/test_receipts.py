"""
Test receipt rendering and addressing.
"""

from datetime import datetime, timezone
from decimal import Decimal

from dormside.schemas import Customer, Order
from dormside.services.notifications import EmailResult, MockMailer
from dormside.services.notifications import build_receipt_messages
from dormside.services.notifications.receipts import render_html_receipt, render_text_receipt
from dormside.tasks import queue_order_receipt
from tests.conftest import mac_and_cheese


def make_order(**overrides) -> Order:
    fields = {
        "id": "order-1",
        "created_at": datetime(2026, 3, 1, 18, 30, tzinfo=timezone.utc),
        "status": "cash_pending",
        "fulfillment": "delivery",
        "payment_method": "cash",
        "tip": Decimal("1.50"),
        "delivery_fee": Decimal("3.00"),
        "total": Decimal("23.50"),
        "items": [mac_and_cheese()],
        "customer": Customer(name="Jamie", email="jamie@example.edu", address="12 Elm Hall"),
    }
    fields.update(overrides)
    return Order(**fields)


def test_text_receipt_lists_items_and_amounts():
    text = render_text_receipt(make_order())

    assert "Order ID: order-1" in text
    assert "2x Mac and Cheese - $9.50 ($19.00)" in text
    assert "Delivery fee: $3.00" in text
    assert "Total: $23.50" in text
    assert "Address: 12 Elm Hall" in text
    assert "Payment: Cash" in text
    assert "Status: cash_pending" in text


def test_html_receipt_escapes_customer_input():
    html = render_html_receipt(make_order(customer=Customer(name="<b>Jamie</b>")))

    assert "&lt;b&gt;Jamie&lt;/b&gt;" in html
    assert "$23.50" in html


def test_pickup_receipt_omits_address():
    text = render_text_receipt(make_order(fulfillment="pickup"))
    assert "Fulfillment: Pickup" in text
    assert "12 Elm Hall" not in text


def test_receipts_go_to_store_and_customer():
    store, customer = build_receipt_messages(
        make_order(), from_email="orders@example.com", admin_email="store@example.com"
    )

    assert store.to == "store@example.com"
    assert store.reply_to == "jamie@example.edu"
    assert customer.to == "jamie@example.edu"
    assert customer.bcc == "store@example.com"


def test_undeliverable_customer_email_gets_no_copy():
    messages = build_receipt_messages(
        make_order(customer=Customer(name="Jamie", email="not-an-address")),
        from_email="orders@example.com",
        admin_email="store@example.com",
    )

    assert [m.to for m in messages] == ["store@example.com"]


class RejectsCustomerCopy(MockMailer):
    """Accepts the store copy and rejects every message to the customer."""

    def __init__(self, customer_email: str):
        super().__init__()
        self.customer_email = customer_email
        self.rejected = 0

    def send(self, message):
        if message.to == self.customer_email:
            self.rejected += 1
            return EmailResult(success=False, error_message="Mailbox unavailable", provider="mock")
        return super().send(message)


def test_failed_customer_copy_does_not_resend_store_copy(monkeypatch):
    mailer = RejectsCustomerCopy("jamie@example.edu")
    monkeypatch.setattr("dormside.tasks.get_mailer", lambda: mailer)

    queue_order_receipt(make_order())

    assert mailer.rejected >= 1
    assert [m.to for m in mailer.outbox] == ["dormsideeats@gmail.com"]
