"""
Order Receipts

Renders an order as plain-text and HTML receipts (Jinja2 templates in
``dormside/templates``) and addresses them:

    - one copy to the store inbox, reply-to the customer
    - one copy to the customer when their email looks deliverable,
      bcc the store inbox
"""

import logging
from decimal import Decimal

from jinja2 import Environment, PackageLoader, select_autoescape

from dormside.schemas import Order, Fulfillment, PaymentMethod
from dormside.services.notifications.base import EmailMessage

logger = logging.getLogger(__name__)

_env = Environment(
    loader=PackageLoader("dormside", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_money(value: Decimal) -> str:
    return f"${value:.2f}"


_env.filters["money"] = format_money


def _context(order: Order, store_name: str) -> dict:
    return {
        "order": order,
        "store_name": store_name,
        "is_delivery": order.fulfillment == Fulfillment.DELIVERY,
        "payment_label": "Cash" if order.payment_method == PaymentMethod.CASH else "Card",
        "placed": order.created_at.strftime("%Y-%m-%d %H:%M %Z").strip(),
    }


def render_text_receipt(order: Order, store_name: str = "Dormside") -> str:
    return _env.get_template("receipt.txt").render(**_context(order, store_name))


def render_html_receipt(order: Order, store_name: str = "Dormside") -> str:
    return _env.get_template("receipt.html").render(**_context(order, store_name))


STORE_COPY = "store"
CUSTOMER_COPY = "customer"


def receipt_copies(order: Order) -> list[str]:
    """The store copy, followed by the customer copy when it can be delivered."""
    if "@" in order.customer.email.strip():
        return [STORE_COPY, CUSTOMER_COPY]
    logger.debug(f"Order {order.id}: no deliverable customer email, store copy only")
    return [STORE_COPY]


def build_receipt_message(
    order: Order,
    copy: str,
    from_email: str,
    admin_email: str,
    store_name: str = "Dormside",
) -> EmailMessage:
    text = render_text_receipt(order, store_name)
    html = render_html_receipt(order, store_name)
    customer_email = order.customer.email.strip()

    if copy == STORE_COPY:
        return EmailMessage(
            to=admin_email,
            subject=f"New order received - {order.customer.name}",
            text=text,
            html=html,
            from_email=from_email,
            reply_to=customer_email or None,
        )
    if copy == CUSTOMER_COPY:
        return EmailMessage(
            to=customer_email,
            subject=f"{store_name} receipt - {order.customer.name}",
            text=text,
            html=html,
            from_email=from_email,
            reply_to=admin_email,
            bcc=admin_email,
        )
    raise ValueError(f"Unknown receipt copy: {copy}")


def build_receipt_messages(
    order: Order,
    from_email: str,
    admin_email: str,
    store_name: str = "Dormside",
) -> list[EmailMessage]:
    return [
        build_receipt_message(order, copy, from_email, admin_email, store_name)
        for copy in receipt_copies(order)
    ]
